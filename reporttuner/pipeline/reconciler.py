"""Job reconciler: records the final model id once a fine-tune job finishes.

Submission returns as soon as the provider accepts a job, so the registry
entry initially has no ``model_id``.  :meth:`JobReconciler.reconcile_once`
polls the pending job and writes the result back.  It takes the same
lease as the retraining pipeline, keeping the registry single-writer.

:meth:`JobReconciler.run_forever` repeats the poll on an interval and is
started from the application lifespan when polling is enabled.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable

import structlog

from reporttuner.interfaces.fine_tune_provider import IFineTuneProvider
from reporttuner.interfaces.lease_provider import ILeaseProvider
from reporttuner.models.registry import FineTuneJob
from reporttuner.pipeline.orchestrator import RETRAINING_LEASE
from reporttuner.services.model_registry import ModelRegistry
from reporttuner.utils.logging import get_logger
from reporttuner.utils.retry import RetryPolicy, retry_async


class JobReconciler:
    """Polls the provider for the registry's pending job."""

    def __init__(
        self,
        provider: IFineTuneProvider,
        model_registry: ModelRegistry,
        lease_provider: ILeaseProvider,
        retry_policy: RetryPolicy | None = None,
        lease_ttl_seconds: int = 900,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._registry = model_registry
        self._lease = lease_provider
        self._retry_policy = retry_policy or RetryPolicy()
        self._lease_ttl = lease_ttl_seconds
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def reconcile_once(self) -> FineTuneJob | None:
        """Poll the pending job once.

        Returns
        -------
        FineTuneJob or None
            The polled job, or ``None`` when nothing is pending or a
            retraining run currently holds the lease.
        """
        holder = uuid.uuid4().hex
        if not await self._lease.acquire(RETRAINING_LEASE, holder, self._lease_ttl):
            self._logger.info("reconcile_skipped_lease_held")
            return None
        try:
            entry = await self._registry.get_entry()
            if entry is None or not entry.awaiting_model:
                return None

            job = await retry_async(
                lambda: self._provider.retrieve_job(entry.job_id),
                self._retry_policy,
                op="poll",
                sleep=self._sleep,
                logger=self._logger.bind(job_id=entry.job_id),
            )
            if not job.status.is_terminal:
                self._logger.info("job_pending", job_id=job.id, status=job.status.value)
            elif await self._lease.renew(RETRAINING_LEASE, holder, self._lease_ttl):
                await self._registry.record_job_result(job)
            else:
                # A retraining run took over while we were polling; it owns the registry now.
                self._logger.warning("reconcile_lease_lost", job_id=job.id, status=job.status.value)
            return job
        finally:
            await self._lease.release(RETRAINING_LEASE, holder)

    async def run_forever(self, interval_seconds: float) -> None:
        """Call :meth:`reconcile_once` every ``interval_seconds`` until cancelled."""
        self._logger.info("reconciler_started", interval_s=interval_seconds)
        while True:
            try:
                await self.reconcile_once()
            except Exception as exc:
                self._logger.warning("reconcile_failed", error=str(exc))
            await asyncio.sleep(interval_seconds)
