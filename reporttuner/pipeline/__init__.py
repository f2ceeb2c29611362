"""Retraining cycle orchestration and job reconciliation."""
