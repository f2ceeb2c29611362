"""Shared pytest fixtures for the reporttuner test suite.

Stores are the real SQLite/filesystem adapters on ``tmp_path``; only the
fine-tune provider is faked, since it is the one external service.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio

from reporttuner.interfaces.blob_store import IBlobStore
from reporttuner.interfaces.fine_tune_provider import IFineTuneProvider
from reporttuner.models.feedback import FeedbackSubmission
from reporttuner.models.registry import FineTuneJob, JobStatus
from reporttuner.pipeline.orchestrator import RetrainingPipeline
from reporttuner.pipeline.reconciler import JobReconciler
from reporttuner.providers.blob.filesystem_blob_store import FilesystemBlobStore
from reporttuner.providers.feedback.sqlite_feedback_store import SQLiteFeedbackStore
from reporttuner.providers.lease.sqlite_lease_provider import SQLiteLeaseProvider
from reporttuner.providers.state.sqlite_state_store import SQLiteStateStore
from reporttuner.services.archival_sink import ArchivalSink
from reporttuner.services.consumption_marker import ConsumptionMarker
from reporttuner.services.job_submitter import FineTuneJobSubmitter
from reporttuner.services.model_registry import ModelRegistry
from reporttuner.services.threshold_trigger import ThresholdTrigger
from reporttuner.services.training_set_builder import TrainingSetBuilder
from reporttuner.utils.errors import TransientIOError
from reporttuner.utils.retry import RetryPolicy

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


async def no_sleep(_delay: float) -> None:
    """Backoff sleep replacement that returns immediately."""


class FakeFineTuneProvider(IFineTuneProvider):
    """Records every call; jobs are accepted as QUEUED unless configured."""

    def __init__(self) -> None:
        self.uploads: list[bytes] = []
        self.jobs_created: list[tuple[str, str]] = []
        self.retrieved: list[str] = []
        self.upload_errors: list[Exception] = []
        self.create_errors: list[Exception] = []
        self.retrieve_result: FineTuneJob | None = None

    async def upload(self, data: bytes, purpose: str = "fine-tune") -> str:
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        self.uploads.append(data)
        return f"file-{len(self.uploads)}"

    async def create_job(self, base_model: str, file_id: str) -> FineTuneJob:
        if self.create_errors:
            raise self.create_errors.pop(0)
        self.jobs_created.append((base_model, file_id))
        return FineTuneJob(
            id=f"ftjob-{len(self.jobs_created)}",
            status=JobStatus.QUEUED,
            base_model=base_model,
            training_file=file_id,
        )

    async def retrieve_job(self, job_id: str) -> FineTuneJob:
        self.retrieved.append(job_id)
        if self.retrieve_result is not None:
            return self.retrieve_result
        return FineTuneJob(id=job_id, status=JobStatus.RUNNING)

    def get_provider_name(self) -> str:
        return "fake_fine_tune"


class FlakyBlobStore(IBlobStore):
    """Wraps a blob store and fails the first ``failures`` writes."""

    def __init__(self, inner: IBlobStore, failures: int) -> None:
        self._inner = inner
        self.failures = failures
        self.put_attempts = 0

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        self.put_attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise TransientIOError(message="blob store unavailable", provider_name="flaky")
        await self._inner.put(key, data, content_type)

    async def exists(self, key: str) -> bool:
        return await self._inner.exists(key)

    async def get(self, key: str) -> bytes | None:
        return await self._inner.get(key)

    def get_provider_name(self) -> str:
        return "flaky_blob"


def submission(
    rating: int = 7,
    section: str = "Findings",
    content: str = "The roof truss failed at the heel joint due to corrosion.",
    **extra,
) -> FeedbackSubmission:
    return FeedbackSubmission(section=section, content=content, rating=rating, **extra)


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def feedback_store(tmp_path: Path) -> SQLiteFeedbackStore:
    store = SQLiteFeedbackStore(db_path=tmp_path / "feedback.db")
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def state_store(tmp_path: Path) -> SQLiteStateStore:
    store = SQLiteStateStore(db_path=tmp_path / "state.db")
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def lease_provider(tmp_path: Path) -> SQLiteLeaseProvider:
    lease = SQLiteLeaseProvider(db_path=tmp_path / "state.db")
    await lease.initialize()
    return lease


@pytest.fixture
def blob_store(tmp_path: Path) -> FilesystemBlobStore:
    return FilesystemBlobStore(root=tmp_path / "blobs")


@pytest.fixture
def fine_tune_provider() -> FakeFineTuneProvider:
    return FakeFineTuneProvider()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.01, max_delay=0.05)


@pytest.fixture
def model_registry(state_store: SQLiteStateStore) -> ModelRegistry:
    # Cache disabled so tests observe every write immediately.
    return ModelRegistry(state_store=state_store, default_model="gpt-3.5-turbo", cache_ttl=0)


# ---------------------------------------------------------------------------
# Pipeline factory
# ---------------------------------------------------------------------------


@pytest.fixture
def make_pipeline(
    feedback_store: SQLiteFeedbackStore,
    state_store: SQLiteStateStore,
    lease_provider: SQLiteLeaseProvider,
    blob_store: FilesystemBlobStore,
    fine_tune_provider: FakeFineTuneProvider,
    model_registry: ModelRegistry,
    retry_policy: RetryPolicy,
) -> Callable[..., RetrainingPipeline]:
    """Return a factory building a pipeline over the shared test stores."""

    def _make(
        *,
        blob: IBlobStore | None = None,
        min_rating: int = 6,
        batch_size: int = 10,
        resume_incomplete: bool = True,
        registry: ModelRegistry | None = None,
        lease_ttl_seconds: int = 60,
    ) -> RetrainingPipeline:
        return RetrainingPipeline(
            feedback_store=feedback_store,
            state_store=state_store,
            lease_provider=lease_provider,
            trigger=ThresholdTrigger(feedback_store, min_rating=min_rating, batch_size=batch_size),
            builder=TrainingSetBuilder(),
            archival_sink=ArchivalSink(blob or blob_store, retry_policy, sleep=no_sleep),
            job_submitter=FineTuneJobSubmitter(
                fine_tune_provider, "gpt-3.5-turbo", retry_policy, sleep=no_sleep
            ),
            model_registry=registry or model_registry,
            consumption_marker=ConsumptionMarker(feedback_store, retry_policy, sleep=no_sleep),
            lease_ttl_seconds=lease_ttl_seconds,
            resume_incomplete=resume_incomplete,
        )

    return _make


@pytest.fixture
def reconciler(
    fine_tune_provider: FakeFineTuneProvider,
    model_registry: ModelRegistry,
    lease_provider: SQLiteLeaseProvider,
    retry_policy: RetryPolicy,
) -> JobReconciler:
    return JobReconciler(
        provider=fine_tune_provider,
        model_registry=model_registry,
        lease_provider=lease_provider,
        retry_policy=retry_policy,
        lease_ttl_seconds=60,
        sleep=no_sleep,
    )


async def insert_raw(
    db_path: Path,
    record_id: str,
    *,
    section: str | None,
    content: str | None,
    rating: int = 7,
) -> None:
    """Insert a row directly, bypassing submission validation."""
    async with aiosqlite.connect(str(db_path)) as db:
        await db.execute(
            "INSERT INTO feedback (id, section, content, rating, created_at) VALUES (?, ?, ?, ?, ?)",
            (record_id, section, content, rating, datetime.now(tz=timezone.utc).isoformat()),
        )
        await db.commit()
