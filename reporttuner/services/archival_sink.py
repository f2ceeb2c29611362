"""Archival sink: durably stores each training batch before submission.

The archive is the audit trail of what every cycle trained on, kept
regardless of what the provider later does with the job.  Keys are the
cycle start time in ISO-8601 (``training-data/2026-10-19T08:30:00.000Z.jsonl``);
if that key is taken, ``-1``, ``-2``, ... is appended before the extension.

Writes are retried with exponential backoff.  When retries run out the
sink raises :class:`ArchivalError` and the cycle aborts without ever
contacting the fine-tune provider.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import structlog

from reporttuner.interfaces.blob_store import IBlobStore
from reporttuner.models.training import TrainingBatch
from reporttuner.utils.errors import ArchivalError, ProviderRejection, TransientIOError
from reporttuner.utils.logging import get_logger
from reporttuner.utils.retry import RetryPolicy, retry_async

CONTENT_TYPE = "application/jsonl"
_EXTENSION = ".jsonl"
_MAX_UNIQUIFIER = 1000


def archive_timestamp(started_at: datetime) -> str:
    """Return ``started_at`` as an ISO-8601 UTC string with millisecond precision."""
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)  # noqa: UP017
    stamp = started_at.astimezone(timezone.utc).isoformat(timespec="milliseconds")  # noqa: UP017
    return stamp.replace("+00:00", "Z")


class ArchivalSink:
    """Writes :class:`TrainingBatch` blobs to an :class:`IBlobStore`."""

    def __init__(
        self,
        blob_store: IBlobStore,
        retry_policy: RetryPolicy | None = None,
        prefix: str = "training-data",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._blob_store = blob_store
        self._retry_policy = retry_policy or RetryPolicy()
        self._prefix = prefix.strip("/")
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def base_key(self, batch: TrainingBatch) -> str:
        stem = archive_timestamp(batch.started_at)
        return f"{self._prefix}/{stem}{_EXTENSION}" if self._prefix else f"{stem}{_EXTENSION}"

    async def _free_key(self, batch: TrainingBatch) -> str:
        key = self.base_key(batch)
        if not await self._blob_store.exists(key):
            return key
        stem = key[: -len(_EXTENSION)]
        for n in range(1, _MAX_UNIQUIFIER + 1):
            candidate = f"{stem}-{n}{_EXTENSION}"
            if not await self._blob_store.exists(candidate):
                return candidate
        raise ArchivalError(
            message=f"No free archive key for {key} after {_MAX_UNIQUIFIER} attempts",
            provider_name=self._blob_store.get_provider_name(),
        )

    async def archive(self, batch: TrainingBatch) -> str:
        """Persist ``batch`` and return the key it was stored under.

        Raises
        ------
        ArchivalError
            If every attempt failed or the store rejected the write.
        """
        log = self._logger.bind(cycle_id=batch.cycle_id)
        data = batch.to_jsonl()

        async def _attempt() -> str:
            key = await self._free_key(batch)
            await self._blob_store.put(key, data, CONTENT_TYPE)
            return key

        try:
            key = await retry_async(
                _attempt,
                self._retry_policy,
                op="archive",
                sleep=self._sleep,
                logger=log,
            )
        except (TransientIOError, ProviderRejection) as exc:
            raise ArchivalError(
                message=f"Archiving cycle {batch.cycle_id} failed: {exc.message}",
                provider_name=exc.provider_name or self._blob_store.get_provider_name(),
            ) from exc

        log.info("batch_archived", key=key, examples=batch.size, bytes=len(data))
        return key
