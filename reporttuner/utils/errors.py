"""Custom exception hierarchy for reporttuner.

All application exceptions inherit from :class:`ReportTunerError`, which
carries an optional ``provider_name`` so error handlers can identify which
external collaborator (e.g. "openai", "gcs", "sqlite_state") caused the
failure.

The hierarchy mirrors how the retraining pipeline reacts to each failure:

    ReportTunerError  (base -- catch-all for any reporttuner error)
    +-- TransientIOError       (network/storage hiccup -- retry with backoff)
    +-- ProviderRejection      (provider refused the request -- abort, no retry)
    +-- DataIntegrityError     (malformed feedback record -- exclude, continue)
    +-- ConcurrencyConflict    (retraining lease held -- skip cycle as no-op)
    |   +-- LeaseLostError     (lease taken over mid-cycle -- stop without writing)
    +-- ArchivalError          (archival retries exhausted -- abort before provider)
    +-- RetrainingError        (cycle orchestration failure)
    +-- ConfigurationError     (startup / invalid config)
    +-- LLMError               (section generation call failed)

Callers handle errors at exactly the right level: the retry helper only
retries ``TransientIOError``, the orchestrator turns everything else into
a failed cycle outcome, and the API middleware turns any of them into a
sanitized JSON response.
"""


class ReportTunerError(Exception):
    """Base exception for all reporttuner errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for log
    scanning, e.g. ``[openai] quota exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# External collaborator errors
# ---------------------------------------------------------------------------

class TransientIOError(ReportTunerError):
    """Raised when a network or storage call fails in a way worth retrying.

    Timeouts, dropped connections, HTTP 429 and 5xx responses all land
    here.  :func:`reporttuner.utils.retry.retry_async` retries these with
    exponential backoff until the retry ceiling is reached.
    """

    def __init__(
        self,
        message: str = "Transient I/O failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderRejection(ReportTunerError):
    """Raised when the fine-tune provider rejects a request outright.

    Invalid training files, exhausted quota and bad credentials are not
    retryable.  The cycle aborts and the feedback stays unprocessed.
    """

    def __init__(
        self,
        message: str = "Provider rejected the request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Data / concurrency errors
# ---------------------------------------------------------------------------

class DataIntegrityError(ReportTunerError):
    """Raised for a feedback record that cannot become a training example."""

    def __init__(
        self,
        message: str = "Malformed feedback record",
        provider_name: str | None = None,
        record_id: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._record_id = record_id

    @property
    def record_id(self) -> str | None:
        return self._record_id


class ConcurrencyConflict(ReportTunerError):
    """Raised when another holder owns the retraining lease."""

    def __init__(
        self,
        message: str = "Retraining lease is held by another worker",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LeaseLostError(ConcurrencyConflict):
    """Raised mid-cycle when the lease could not be renewed.

    Another run has claimed the lease after this one overran its TTL, so
    this run must stop without writing anything further.
    """


# ---------------------------------------------------------------------------
# Pipeline errors
# ---------------------------------------------------------------------------

class ArchivalError(ReportTunerError):
    """Raised when the training batch could not be archived after all retries."""

    def __init__(
        self,
        message: str = "Training batch archival failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RetrainingError(ReportTunerError):
    """Raised when a retraining cycle hits an invalid state transition."""

    def __init__(
        self,
        message: str = "Retraining cycle failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(ReportTunerError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LLMError(ReportTunerError):
    """Raised when a section-generation LLM call fails or returns nothing."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
