"""Consumption marker: flips ``processed`` on the records a cycle trained on.

Runs only after the registry write succeeded.  Marks exactly the ids
captured when the batch was built, in one store transaction, so feedback
that arrived mid-cycle stays unprocessed for the next cycle.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

import structlog

from reporttuner.interfaces.feedback_store import IFeedbackStore
from reporttuner.utils.logging import get_logger
from reporttuner.utils.retry import RetryPolicy, retry_async


class ConsumptionMarker:
    """Marks a cycle's feedback records as processed."""

    def __init__(
        self,
        feedback_store: IFeedbackStore,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._feedback_store = feedback_store
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def mark(self, record_ids: Sequence[str], cycle_id: str) -> int:
        """Mark ``record_ids`` processed; returns how many rows flipped."""
        log = self._logger.bind(cycle_id=cycle_id)
        if not record_ids:
            return 0
        count = await retry_async(
            lambda: self._feedback_store.mark_processed(record_ids, cycle_id=cycle_id),
            self._retry_policy,
            op="mark",
            sleep=self._sleep,
            logger=log,
        )
        log.info("feedback_marked", requested=len(record_ids), marked=count)
        return count
