"""reporttuner domain models: re-exports all public model classes.

Submodules by concern:
    - feedback.py : ingestion schema and stored feedback records
    - training.py : provider-format training examples and batches
    - registry.py : current-model pointer and fine-tune job descriptors
    - cycle.py    : retraining cycle write-ahead log and outcomes
"""

from __future__ import annotations

from reporttuner.models.cycle import CycleOutcome, CycleRecord, CycleStatus, OutcomeStatus
from reporttuner.models.feedback import (
    MAX_RATING,
    MIN_RATING,
    FeedbackRecord,
    FeedbackSubmission,
)
from reporttuner.models.registry import (
    REGISTRY_KEY,
    FineTuneJob,
    JobStatus,
    ModelRegistryEntry,
)
from reporttuner.models.training import TrainingBatch, TrainingExample

__all__ = [
    "MAX_RATING",
    "MIN_RATING",
    "REGISTRY_KEY",
    "CycleOutcome",
    "CycleRecord",
    "CycleStatus",
    "FeedbackRecord",
    "FeedbackSubmission",
    "FineTuneJob",
    "JobStatus",
    "ModelRegistryEntry",
    "OutcomeStatus",
    "TrainingBatch",
    "TrainingExample",
]
