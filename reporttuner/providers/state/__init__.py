"""Config/state persistence adapters (model registry documents + cycle log)."""
