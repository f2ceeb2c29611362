"""Archival blob storage adapters (local filesystem, Google Cloud Storage)."""
