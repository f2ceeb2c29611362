"""Abstract base class for feedback persistence.

The feedback store is a durable append log of rated sections.  Ingestion
appends to it at any time; only a retraining cycle flips ``processed``.
Implementations may use SQLite (local), MongoDB, PostgreSQL, or any other
backend behind the same adapter.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from reporttuner.models.feedback import FeedbackRecord, FeedbackSubmission


class IFeedbackStore(ABC):
    """Contract for feedback-record persistence.

    All operations are async to support network-backed stores.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist.  Called at startup."""

    @abstractmethod
    async def insert(self, submission: FeedbackSubmission) -> FeedbackRecord:
        """Append a new record with ``processed=False`` and server ``created_at``.

        Returns
        -------
        FeedbackRecord
            The stored record including its generated ``id``.
        """

    @abstractmethod
    async def get(self, record_id: str) -> FeedbackRecord | None:
        """Return one record by id, or ``None`` if it does not exist."""

    @abstractmethod
    async def list_qualifying(self, min_rating: int) -> list[FeedbackRecord]:
        """Return every unprocessed record rated at least ``min_rating``.

        Ordered by ``created_at`` then ``id`` so callers get a stable
        snapshot for a given store state.
        """

    @abstractmethod
    async def count_qualifying(self, min_rating: int) -> int:
        """Return how many unprocessed records are rated at least ``min_rating``."""

    @abstractmethod
    async def get_by_ids(self, record_ids: Sequence[str]) -> list[FeedbackRecord]:
        """Return the records with the given ids, preserving the input order.

        Unknown ids are skipped.
        """

    @abstractmethod
    async def mark_processed(
        self,
        record_ids: Sequence[str],
        cycle_id: str | None = None,
    ) -> int:
        """Set ``processed=True`` on exactly the given ids in one transaction.

        Rows already processed are left untouched.  ``cycle_id`` is stored
        alongside the flag for auditing which cycle consumed the record.

        Returns
        -------
        int
            Number of rows that flipped from unprocessed to processed.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
