"""Unit tests for the SQLite feedback store, state store, and lease."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from reporttuner.models.cycle import CycleRecord, CycleStatus
from reporttuner.providers.feedback.sqlite_feedback_store import SQLiteFeedbackStore
from reporttuner.providers.lease.sqlite_lease_provider import SQLiteLeaseProvider
from reporttuner.providers.state.sqlite_state_store import SQLiteStateStore
from reporttuner.utils.errors import TransientIOError
from tests.conftest import submission


class TestSQLiteFeedbackStore:
    async def test_initialize_creates_db(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "feedback.db"
        await SQLiteFeedbackStore(db_path=db_path).initialize()
        assert db_path.exists()

    async def test_insert_sets_server_fields(self, feedback_store: SQLiteFeedbackStore) -> None:
        record = await feedback_store.insert(submission(rating=5, timestamp="2020-01-01T00:00:00Z"))
        assert record.id
        assert record.processed is False
        assert record.client_timestamp == "2020-01-01T00:00:00Z"
        # Server time, not the client-supplied timestamp.
        assert record.created_at.year >= 2024

        fetched = await feedback_store.get(record.id)
        assert fetched == record

    async def test_insert_operational_error_is_transient(self, tmp_path: Path) -> None:
        # No initialize(): the file exists but the table does not.
        store = SQLiteFeedbackStore(db_path=tmp_path / "feedback.db")
        with pytest.raises(TransientIOError, match="Could not store feedback"):
            await store.insert(submission())

    async def test_get_unknown_returns_none(self, feedback_store: SQLiteFeedbackStore) -> None:
        assert await feedback_store.get("missing") is None

    async def test_list_qualifying_filters_and_orders(
        self, feedback_store: SQLiteFeedbackStore
    ) -> None:
        high_1 = await feedback_store.insert(submission(rating=7, content="first"))
        await feedback_store.insert(submission(rating=3, content="low"))
        high_2 = await feedback_store.insert(submission(rating=6, content="second"))

        qualifying = await feedback_store.list_qualifying(6)
        assert [r.id for r in qualifying] == [high_1.id, high_2.id]
        assert await feedback_store.count_qualifying(6) == 2
        assert await feedback_store.count_qualifying(7) == 1

    async def test_get_by_ids_preserves_order(self, feedback_store: SQLiteFeedbackStore) -> None:
        a = await feedback_store.insert(submission(content="a"))
        b = await feedback_store.insert(submission(content="b"))
        records = await feedback_store.get_by_ids([b.id, "unknown", a.id])
        assert [r.id for r in records] == [b.id, a.id]

    async def test_mark_processed_exact_ids(self, feedback_store: SQLiteFeedbackStore) -> None:
        a = await feedback_store.insert(submission(content="a"))
        b = await feedback_store.insert(submission(content="b"))
        c = await feedback_store.insert(submission(content="c"))

        updated = await feedback_store.mark_processed([a.id, b.id, a.id], cycle_id="cycle-1")
        assert updated == 2
        assert (await feedback_store.get(a.id)).processed is True
        assert (await feedback_store.get(c.id)).processed is False
        assert [r.id for r in await feedback_store.list_qualifying(1)] == [c.id]

    async def test_mark_processed_is_idempotent(self, feedback_store: SQLiteFeedbackStore) -> None:
        a = await feedback_store.insert(submission())
        assert await feedback_store.mark_processed([a.id]) == 1
        assert await feedback_store.mark_processed([a.id]) == 0

    async def test_mark_processed_empty(self, feedback_store: SQLiteFeedbackStore) -> None:
        assert await feedback_store.mark_processed([]) == 0


class TestSQLiteStateStore:
    async def test_upsert_replaces_wholesale(self, state_store: SQLiteStateStore) -> None:
        await state_store.upsert("latest_model", {"model_id": "a", "extra": 1})
        await state_store.upsert("latest_model", {"model_id": "b"})
        assert await state_store.find_one("latest_model") == {"model_id": "b"}

    async def test_find_one_missing(self, state_store: SQLiteStateStore) -> None:
        assert await state_store.find_one("nothing") is None

    async def test_cycle_round_trip(self, state_store: SQLiteStateStore) -> None:
        cycle = CycleRecord(cycle_id="c1", feedback_ids=("a", "b"))
        await state_store.save_cycle(cycle)
        await state_store.save_cycle(cycle.advance(CycleStatus.ARCHIVED, archive_key="k"))

        stored = await state_store.get_cycle("c1")
        assert stored is not None
        assert stored.status is CycleStatus.ARCHIVED
        assert stored.feedback_ids == ("a", "b")
        assert stored.archive_key == "k"

    async def test_find_incomplete_skips_terminal(self, state_store: SQLiteStateStore) -> None:
        await state_store.save_cycle(CycleRecord(cycle_id="done", status=CycleStatus.MARKED))
        await state_store.save_cycle(CycleRecord(cycle_id="failed", status=CycleStatus.FAILED))
        assert await state_store.find_incomplete_cycle() is None

        await state_store.save_cycle(CycleRecord(cycle_id="open", status=CycleStatus.SUBMITTED))
        incomplete = await state_store.find_incomplete_cycle()
        assert incomplete is not None
        assert incomplete.cycle_id == "open"

    async def test_list_cycles_newest_first(self, state_store: SQLiteStateStore) -> None:
        first = CycleRecord(cycle_id="first")
        await state_store.save_cycle(first)
        await asyncio.sleep(0.01)
        second = CycleRecord(cycle_id="second")
        await state_store.save_cycle(second)

        cycles = await state_store.list_cycles(limit=10)
        assert [c.cycle_id for c in cycles] == ["second", "first"]
        assert len(await state_store.list_cycles(limit=1)) == 1


class TestSQLiteLeaseProvider:
    async def test_single_holder(self, lease_provider: SQLiteLeaseProvider) -> None:
        assert await lease_provider.acquire("retraining", "a", 60) is True
        assert await lease_provider.acquire("retraining", "b", 60) is False

    async def test_reacquire_by_same_holder(self, lease_provider: SQLiteLeaseProvider) -> None:
        assert await lease_provider.acquire("retraining", "a", 60) is True
        assert await lease_provider.acquire("retraining", "a", 60) is True

    async def test_release_frees_lease(self, lease_provider: SQLiteLeaseProvider) -> None:
        await lease_provider.acquire("retraining", "a", 60)
        await lease_provider.release("retraining", "a")
        assert await lease_provider.acquire("retraining", "b", 60) is True

    async def test_release_by_other_holder_is_noop(
        self, lease_provider: SQLiteLeaseProvider
    ) -> None:
        await lease_provider.acquire("retraining", "a", 60)
        await lease_provider.release("retraining", "b")
        assert await lease_provider.acquire("retraining", "b", 60) is False

    async def test_expired_lease_can_be_taken(self, lease_provider: SQLiteLeaseProvider) -> None:
        await lease_provider.acquire("retraining", "crashed", -1)
        assert await lease_provider.acquire("retraining", "b", 60) is True

    async def test_names_are_independent(self, lease_provider: SQLiteLeaseProvider) -> None:
        assert await lease_provider.acquire("one", "a", 60) is True
        assert await lease_provider.acquire("two", "b", 60) is True

    async def test_renew_extends_own_lease(self, lease_provider: SQLiteLeaseProvider) -> None:
        await lease_provider.acquire("retraining", "a", -1)
        assert await lease_provider.renew("retraining", "a", 60) is True
        assert await lease_provider.acquire("retraining", "b", 60) is False

    async def test_renew_fails_after_takeover(self, lease_provider: SQLiteLeaseProvider) -> None:
        await lease_provider.acquire("retraining", "slow", -1)
        assert await lease_provider.acquire("retraining", "fast", 60) is True
        assert await lease_provider.renew("retraining", "slow", 60) is False

    async def test_renew_fails_after_release(self, lease_provider: SQLiteLeaseProvider) -> None:
        await lease_provider.acquire("retraining", "a", 60)
        await lease_provider.release("retraining", "a")
        assert await lease_provider.renew("retraining", "a", 60) is False


async def test_concurrent_acquire_single_winner(tmp_path: Path) -> None:
    lease = SQLiteLeaseProvider(db_path=tmp_path / "lease.db")
    await lease.initialize()
    results = await asyncio.gather(
        *(lease.acquire("retraining", f"h{i}", 60) for i in range(5))
    )
    assert sum(results) == 1
