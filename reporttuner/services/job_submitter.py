"""Fine-tune job submitter: uploads a batch and asks the provider for a job.

Upload and job creation are separate, individually retried steps so the
orchestrator can checkpoint the uploaded ``file_id`` between them; a
resumed cycle then skips the upload it already paid for.  Submission
returns as soon as the provider accepts the job and never waits for
training to finish.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from reporttuner.interfaces.fine_tune_provider import IFineTuneProvider
from reporttuner.models.registry import FineTuneJob
from reporttuner.utils.logging import get_logger
from reporttuner.utils.retry import RetryPolicy, retry_async


class FineTuneJobSubmitter:
    """Submits training batches to an :class:`IFineTuneProvider`.

    Transient provider failures are retried with backoff.  A
    :class:`~reporttuner.utils.errors.ProviderRejection` propagates on the
    first attempt.
    """

    def __init__(
        self,
        provider: IFineTuneProvider,
        base_model: str,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._base_model = base_model
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def base_model(self) -> str:
        return self._base_model

    async def upload(self, data: bytes, cycle_id: str | None = None) -> str:
        """Upload serialized training data and return the provider file id."""
        log = self._logger.bind(cycle_id=cycle_id)
        file_id = await retry_async(
            lambda: self._provider.upload(data),
            self._retry_policy,
            op="upload",
            sleep=self._sleep,
            logger=log,
        )
        log.info("training_file_uploaded", file_id=file_id, bytes=len(data))
        return file_id

    async def create_job(self, file_id: str, cycle_id: str | None = None) -> FineTuneJob:
        """Create a fine-tune job for an uploaded file."""
        log = self._logger.bind(cycle_id=cycle_id)
        job = await retry_async(
            lambda: self._provider.create_job(self._base_model, file_id),
            self._retry_policy,
            op="submit",
            sleep=self._sleep,
            logger=log,
        )
        log.info(
            "job_submitted",
            job_id=job.id,
            status=job.status.value,
            base_model=self._base_model,
            provider=self._provider.get_provider_name(),
        )
        return job
