"""Concrete adapters for the interfaces in ``reporttuner.interfaces``."""
