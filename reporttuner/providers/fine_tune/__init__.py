"""External fine-tuning provider adapters."""
