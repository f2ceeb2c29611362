"""Utility modules for reporttuner.

- **errors** -- Domain exception hierarchy rooted at ReportTunerError; the
  retraining pipeline decides retry / abort / skip from the exception type.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production, and
  ``cycle_context`` for tagging every event of a retraining cycle.
- **retry** -- Bounded exponential-backoff retry for archival and
  fine-tune provider calls.
"""

from reporttuner.utils.errors import (
    ArchivalError,
    ConcurrencyConflict,
    ConfigurationError,
    DataIntegrityError,
    LeaseLostError,
    LLMError,
    ProviderRejection,
    ReportTunerError,
    RetrainingError,
    TransientIOError,
)
from reporttuner.utils.logging import configure_logging, cycle_context, get_logger
from reporttuner.utils.retry import RetryPolicy, retry_async

__all__ = [
    "ArchivalError",
    "ConcurrencyConflict",
    "ConfigurationError",
    "DataIntegrityError",
    "LeaseLostError",
    "LLMError",
    "ProviderRejection",
    "ReportTunerError",
    "RetrainingError",
    "RetryPolicy",
    "TransientIOError",
    "configure_logging",
    "cycle_context",
    "get_logger",
    "retry_async",
]
