"""Model registry and fine-tune job models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

REGISTRY_KEY = "latest_model"


class JobStatus(str, Enum):  # noqa: UP042  (StrEnum requires Python 3.11+)
    """Normalized lifecycle of an external fine-tune job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class FineTuneJob(BaseModel):
    """Descriptor of a provider-side fine-tune job.

    ``model_id`` is only populated once the provider finishes training,
    which usually happens long after the job was accepted.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus
    model_id: str | None = None
    base_model: str | None = None
    training_file: str | None = None
    provider_status: str | None = None


class ModelRegistryEntry(BaseModel):
    """The singleton ``latest_model`` pointer, overwritten by each successful cycle."""

    model_config = ConfigDict(frozen=True)

    key: str = REGISTRY_KEY
    model_id: str | None = None
    job_id: str | None = None
    job_status: JobStatus | None = None
    # Last finished model, served while a newer job is still training.
    previous_model_id: str | None = None
    base_model: str | None = None
    cycle_id: str | None = None
    training_size: int = 0
    last_fine_tuned: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )

    @property
    def awaiting_model(self) -> bool:
        """True while the job was accepted but has not produced a final model."""
        return self.job_id is not None and self.model_id is None and not (
            self.job_status is not None and self.job_status.is_terminal
        )

    @property
    def serving_model_id(self) -> str | None:
        """Model to generate with: the newest finished one, if any."""
        return self.model_id or self.previous_model_id
