"""Abstract base class for external fine-tuning providers.

The provider owns the whole training lifecycle; this process only uploads
a training file, asks for a job, and later polls the job for its final
model id.  None of these calls may block on training completion.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from reporttuner.models.registry import FineTuneJob


class IFineTuneProvider(ABC):
    """Contract for the two-step upload-then-create-job protocol.

    Implementations map failures onto
    :class:`~reporttuner.utils.errors.TransientIOError` (retryable) and
    :class:`~reporttuner.utils.errors.ProviderRejection` (not retryable).
    """

    @abstractmethod
    async def upload(self, data: bytes, purpose: str = "fine-tune") -> str:
        """Upload serialized training data and return the provider file handle."""

    @abstractmethod
    async def create_job(self, base_model: str, file_id: str) -> FineTuneJob:
        """Request a fine-tune job for ``file_id`` starting from ``base_model``."""

    @abstractmethod
    async def retrieve_job(self, job_id: str) -> FineTuneJob:
        """Return the provider's current view of a job."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
