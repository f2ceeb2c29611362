"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Two sources, in priority order:
#
#   1. **Environment variables**: e.g. RETRAIN_BATCH_SIZE=25 (always wins)
#   2. **.env file**: key=value lines in the project root .env file
#
# Field ``retrain_batch_size`` maps to env var ``RETRAIN_BATCH_SIZE``.
# Defaults below apply when neither source sets a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from reporttuner.utils.errors import ConfigurationError

DEFAULT_BASE_MODEL = "gpt-3.5-turbo"


class Settings(BaseSettings):
    """reporttuner application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === OpenAI ===
    # One key drives both section generation and fine-tune submission.
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_timeout_seconds: float = 60.0
    # Model used for generation when the registry has no fine-tuned model.
    default_base_model: str = DEFAULT_BASE_MODEL
    # Model the fine-tune jobs start from.
    fine_tune_base_model: str = DEFAULT_BASE_MODEL

    # === Feedback / state persistence ===
    feedback_db_path: str = "data/feedback.db"
    state_db_path: str = "data/state.db"

    # === Archival blob storage ===
    blob_backend: str = "filesystem"  # "filesystem" or "gcs"
    blob_dir: str = "data/blobs"
    blob_prefix: str = "training-data"
    gcs_bucket: str = ""
    gcp_project: str = ""

    # === Retraining trigger ===
    retrain_min_rating: int = 6
    retrain_batch_size: int = 10
    retrain_on_ingest: bool = True

    # === Retry policy for archival + provider calls ===
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0

    # === Cycle coordination ===
    lease_ttl_seconds: int = 900
    cycle_resume_enabled: bool = True
    reconcile_interval_seconds: int = 0  # 0 disables the background poller
    registry_cache_ttl: int = 60

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def validate_retraining(self) -> None:
        """Reject retraining settings that would make the trigger meaningless.

        Raises
        ------
        ConfigurationError
            If a threshold, retry or lease value is out of range.
        """
        if not 1 <= self.retrain_min_rating <= 7:
            raise ConfigurationError(
                f"RETRAIN_MIN_RATING must be between 1 and 7, got {self.retrain_min_rating}"
            )
        if self.retrain_batch_size < 1:
            raise ConfigurationError(
                f"RETRAIN_BATCH_SIZE must be at least 1, got {self.retrain_batch_size}"
            )
        if self.retry_max_attempts < 1:
            raise ConfigurationError(
                f"RETRY_MAX_ATTEMPTS must be at least 1, got {self.retry_max_attempts}"
            )
        step_budget = self.retry_max_attempts * (self.openai_timeout_seconds + self.retry_max_delay)
        if self.lease_ttl_seconds < step_budget:
            # A single retried step must fit inside one lease period.
            raise ConfigurationError(
                f"LEASE_TTL_SECONDS ({self.lease_ttl_seconds}) must cover one retried step: "
                f"RETRY_MAX_ATTEMPTS * (OPENAI_TIMEOUT_SECONDS + RETRY_MAX_DELAY) = {step_budget:g}"
            )
        if self.blob_backend not in ("filesystem", "gcs"):
            raise ConfigurationError(f"Unknown BLOB_BACKEND: {self.blob_backend}")
        if self.blob_backend == "gcs" and not self.gcs_bucket:
            raise ConfigurationError("BLOB_BACKEND=gcs requires GCS_BUCKET")
