"""Retraining lease adapters (single-flight cycle coordination)."""
