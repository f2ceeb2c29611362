"""Configuration module: exports Settings and load_config."""

from reporttuner.config.loader import load_config
from reporttuner.config.settings import DEFAULT_BASE_MODEL, Settings

__all__ = ["DEFAULT_BASE_MODEL", "Settings", "load_config"]
