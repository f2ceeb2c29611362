"""Section-generation LLM adapters."""
