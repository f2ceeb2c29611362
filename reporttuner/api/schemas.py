"""Pydantic request/response schemas for the ReportTuner API.

Request bodies for feedback reuse :class:`FeedbackSubmission` directly, so
unknown fields and out-of-range ratings are rejected with a 422 before
anything touches the store.  Response schemas end with ``Response``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from reporttuner.models.cycle import CycleRecord
from reporttuner.models.registry import FineTuneJob, ModelRegistryEntry


class FeedbackResponse(BaseModel):
    """Acknowledgement for a stored feedback submission."""

    success: bool = True
    message: str = "Feedback stored successfully"
    id: str
    created_at: datetime
    retraining_scheduled: bool = False


class GenerateSectionRequest(BaseModel):
    """A section to draft plus free-form report context."""

    model_config = ConfigDict(extra="forbid")

    section: str = Field(..., min_length=1, max_length=200)
    context: dict[str, Any] = Field(default_factory=dict)


class GenerateSectionResponse(BaseModel):
    """Generated section text and the model that produced it."""

    section: str
    content: str
    model: str


class RetrainingStatusResponse(BaseModel):
    """Current trigger state, registry entry, and recent cycles."""

    qualifying_count: int
    threshold: int
    min_rating: int
    registry: ModelRegistryEntry | None = None
    recent_cycles: list[CycleRecord] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    """Result of one reconciliation poll."""

    polled: bool
    job: FineTuneJob | None = None
    registry: ModelRegistryEntry | None = None


class ModelResponse(BaseModel):
    """The model section generation would use right now."""

    model_id: str
    is_default: bool
    entry: ModelRegistryEntry | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
