"""Feedback ingestion: validates and appends one rated section.

Ingestion only appends.  Whether a retraining cycle should follow is
decided by the caller (the API schedules one in the background), so a
slow or failing cycle can never delay or fail a submission.
"""

from __future__ import annotations

import structlog

from reporttuner.interfaces.feedback_store import IFeedbackStore
from reporttuner.models.feedback import FeedbackRecord, FeedbackSubmission
from reporttuner.utils.logging import get_logger


class FeedbackIngestionService:
    """Appends validated feedback submissions to the feedback store."""

    def __init__(self, feedback_store: IFeedbackStore) -> None:
        self._feedback_store = feedback_store
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def submit(self, submission: FeedbackSubmission) -> FeedbackRecord:
        record = await self._feedback_store.insert(submission)
        self._logger.info(
            "feedback_ingested",
            feedback_id=record.id,
            section=record.section,
            rating=record.rating,
        )
        return record
