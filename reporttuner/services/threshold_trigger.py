"""Threshold trigger: decides whether accumulated feedback warrants a cycle.

A cycle fires when the number of *qualifying* records (unprocessed and
rated at least ``min_rating``) reaches ``batch_size``.  The decision
carries the exact snapshot of qualifying records so the rest of the
cycle works from what was captured here, never from a re-query.

Double-counting across overlapping invocations is prevented by the
retraining lease held around this call, not by the trigger itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from reporttuner.interfaces.feedback_store import IFeedbackStore
from reporttuner.models.feedback import MAX_RATING, MIN_RATING, FeedbackRecord
from reporttuner.utils.logging import get_logger


@dataclass(frozen=True)
class TriggerDecision:
    """Result of one threshold evaluation."""

    fired: bool
    min_rating: int
    batch_size: int
    qualifying_count: int
    # Populated only when the trigger fired.
    qualifying: tuple[FeedbackRecord, ...] = field(default_factory=tuple)


class ThresholdTrigger:
    """Fires a retraining cycle once enough high-rated feedback accumulates."""

    def __init__(
        self,
        feedback_store: IFeedbackStore,
        min_rating: int = 6,
        batch_size: int = 10,
    ) -> None:
        if not MIN_RATING <= min_rating <= MAX_RATING:
            msg = f"min_rating must be between {MIN_RATING} and {MAX_RATING}, got {min_rating}"
            raise ValueError(msg)
        if batch_size < 1:
            msg = f"batch_size must be at least 1, got {batch_size}"
            raise ValueError(msg)
        self._feedback_store = feedback_store
        self._min_rating = min_rating
        self._batch_size = batch_size
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def min_rating(self) -> int:
        return self._min_rating

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def evaluate(self) -> TriggerDecision:
        """Snapshot qualifying feedback and decide whether to fire."""
        records = await self._feedback_store.list_qualifying(self._min_rating)
        # The store already filters; re-check so a lax adapter can't leak
        # processed or low-rated rows into a batch.
        qualifying = tuple(r for r in records if r.is_qualifying(self._min_rating))
        fired = len(qualifying) >= self._batch_size

        self._logger.info(
            "threshold_evaluated",
            qualifying=len(qualifying),
            batch_size=self._batch_size,
            min_rating=self._min_rating,
            fired=fired,
        )
        return TriggerDecision(
            fired=fired,
            min_rating=self._min_rating,
            batch_size=self._batch_size,
            qualifying_count=len(qualifying),
            qualifying=qualifying if fired else (),
        )

    async def pending_count(self) -> int:
        """Return the current qualifying count without building a snapshot."""
        return await self._feedback_store.count_qualifying(self._min_rating)
