"""Feedback domain models: rated report sections and the ingestion schema.

# ─── ARCHITECTURE ROLE ───────────────────────────────────────────────
#
# Layer: Models (bottom of the dependency graph; no imports from upper layers).
#
# ``FeedbackSubmission`` is the validated ingestion boundary: unknown
# fields are rejected instead of being merged into the stored record.
# ``FeedbackRecord`` is what the feedback store hands back.  Its
# ``section`` and ``content`` are optional because the store may hold
# rows written before validation existed; the training-set builder
# excludes those rows rather than trusting them.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_RATING = 1
MAX_RATING = 7


class FeedbackSubmission(BaseModel):
    """A user's rating of one generated report section."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    section: str = Field(..., min_length=1, max_length=200, description="Report section tag.")
    content: str = Field(..., min_length=1, description="The generated section text being rated.")
    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING, description="Quality rating, 1 (worst) to 7 (best).")
    comment: str | None = Field(default=None, max_length=5000)
    # Client-side timestamp, kept for audit only; createdAt is server time.
    timestamp: str | None = Field(default=None, max_length=64)

    @field_validator("section", "content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class FeedbackRecord(BaseModel):
    """A stored feedback row.

    ``processed`` flips from False to True exactly once, inside the
    retraining cycle that consumed this record.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    section: str | None = None
    content: str | None = None
    rating: int
    comment: str | None = None
    client_timestamp: str | None = None
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    processed: bool = False

    def is_qualifying(self, min_rating: int) -> bool:
        """Return True when this record is unprocessed and rated at least ``min_rating``."""
        return not self.processed and self.rating >= min_rating
