"""Retraining pipeline components and request-facing services."""
