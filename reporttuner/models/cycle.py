"""Retraining cycle state: the write-ahead log and the reported outcome.

# ─── WRITE-AHEAD LOG ─────────────────────────────────────────────────
#
# A ``CycleRecord`` is persisted before any external call and advanced
# after each step completes:
#
#   PENDING → ARCHIVED → SUBMITTED → REGISTERED → MARKED
#        ╲________╲__________╲____________╲──────→ FAILED
#
# After a crash the orchestrator resumes an incomplete record from its
# last completed status.  MARKED and FAILED are terminal.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class CycleStatus(str, Enum):  # noqa: UP042  (StrEnum requires Python 3.11+)
    """Last completed step of a retraining cycle."""

    PENDING = "pending"
    ARCHIVED = "archived"
    SUBMITTED = "submitted"
    REGISTERED = "registered"
    MARKED = "marked"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CycleStatus.MARKED, CycleStatus.FAILED)


_ORDER = [
    CycleStatus.PENDING,
    CycleStatus.ARCHIVED,
    CycleStatus.SUBMITTED,
    CycleStatus.REGISTERED,
    CycleStatus.MARKED,
]


class CycleRecord(BaseModel):
    """Durable progress record for one retraining cycle."""

    model_config = ConfigDict(frozen=True)

    cycle_id: str
    status: CycleStatus = CycleStatus.PENDING
    feedback_ids: tuple[str, ...] = Field(default_factory=tuple)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    archive_key: str | None = None
    file_id: str | None = None
    job_id: str | None = None
    model_id: str | None = None
    error: str | None = None

    def reached(self, status: CycleStatus) -> bool:
        """Return True if this cycle has already completed ``status``."""
        if self.status is CycleStatus.FAILED:
            return False
        return _ORDER.index(self.status) >= _ORDER.index(status)

    def advance(self, status: CycleStatus, **fields: Any) -> CycleRecord:
        """Return a copy moved forward to ``status`` with extra fields set."""
        if self.status.is_terminal:
            msg = f"Cycle {self.cycle_id} is already {self.status.value}"
            raise ValueError(msg)
        if status is not CycleStatus.FAILED and _ORDER.index(status) <= _ORDER.index(self.status):
            msg = f"Cannot move cycle {self.cycle_id} from {self.status.value} to {status.value}"
            raise ValueError(msg)
        return self.model_copy(update={"status": status, "updated_at": _utcnow(), **fields})


class OutcomeStatus(str, Enum):  # noqa: UP042
    """How a ``run_cycle`` invocation ended."""

    SKIPPED_LEASE_HELD = "skipped_lease_held"
    THRESHOLD_NOT_MET = "threshold_not_met"
    COMPLETED = "completed"
    FAILED = "failed"


class CycleOutcome(BaseModel):
    """Summary of one ``run_cycle`` call, returned to the API and CLI."""

    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    cycle_id: str | None = None
    qualifying_count: int = 0
    threshold: int = 0
    batch_size: int = 0
    excluded_ids: list[str] = Field(default_factory=list)
    archive_key: str | None = None
    job_id: str | None = None
    model_id: str | None = None
    marked_count: int = 0
    resumed: bool = False
    error: str | None = None
