"""SQLite-backed feedback store.

Persists rated report sections to a local SQLite database at
``data/feedback.db``.  Uses ``aiosqlite`` for async I/O.  The ``seq``
column preserves insertion order so qualifying snapshots are stable.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from reporttuner.interfaces.feedback_store import IFeedbackStore
from reporttuner.models.feedback import FeedbackRecord, FeedbackSubmission
from reporttuner.utils.errors import TransientIOError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/feedback.db")

# SQLite caps bound parameters per statement; stay well under the limit.
_ID_CHUNK_SIZE = 500

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS feedback (
    seq              INTEGER PRIMARY KEY AUTOINCREMENT,
    id               TEXT    NOT NULL UNIQUE,
    section          TEXT,
    content          TEXT,
    rating           INTEGER NOT NULL,
    comment          TEXT,
    client_timestamp TEXT,
    created_at       TEXT    NOT NULL,
    processed        INTEGER NOT NULL DEFAULT 0,
    processed_at     TEXT,
    cycle_id         TEXT
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_feedback_qualifying ON feedback(processed, rating);",
    "CREATE INDEX IF NOT EXISTS idx_feedback_cycle ON feedback(cycle_id);",
]

_INSERT_SQL = """\
INSERT INTO feedback (id, section, content, rating, comment, client_timestamp, created_at)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_COLUMNS = "id, section, content, rating, comment, client_timestamp, created_at, processed"


def _row_to_record(row: aiosqlite.Row) -> FeedbackRecord:
    data = dict(row)
    return FeedbackRecord(
        id=data["id"],
        section=data["section"],
        content=data["content"],
        rating=data["rating"],
        comment=data["comment"],
        client_timestamp=data["client_timestamp"],
        created_at=datetime.fromisoformat(data["created_at"]),
        processed=bool(data["processed"]),
    )


class SQLiteFeedbackStore(IFeedbackStore):
    """SQLite-backed feedback persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the feedback table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("feedback_db_initialized", path=str(self._db_path))

    async def insert(self, submission: FeedbackSubmission) -> FeedbackRecord:
        """Append a record with a fresh id, server time and ``processed=False``."""
        record = FeedbackRecord(
            id=uuid.uuid4().hex,
            section=submission.section,
            content=submission.content,
            rating=submission.rating,
            comment=submission.comment,
            client_timestamp=submission.timestamp,
            created_at=datetime.now(tz=timezone.utc),  # noqa: UP017
        )
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _INSERT_SQL,
                    (
                        record.id,
                        record.section,
                        record.content,
                        record.rating,
                        record.comment,
                        record.client_timestamp,
                        record.created_at.isoformat(),
                    ),
                )
                await db.commit()
        except sqlite3.OperationalError as exc:
            raise TransientIOError(
                message=f"Could not store feedback: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "feedback_stored",
            feedback_id=record.id,
            section=record.section,
            rating=record.rating,
        )
        return record

    async def get(self, record_id: str) -> FeedbackRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM feedback WHERE id = ?",
                (record_id,),
            )
            row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    async def list_qualifying(self, min_rating: int) -> list[FeedbackRecord]:
        """Return unprocessed records rated >= ``min_rating`` in insertion order."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM feedback "
                "WHERE processed = 0 AND rating >= ? ORDER BY seq",
                (min_rating,),
            )
            rows = await cursor.fetchall()
        return [_row_to_record(r) for r in rows]

    async def count_qualifying(self, min_rating: int) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM feedback WHERE processed = 0 AND rating >= ?",
                (min_rating,),
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def get_by_ids(self, record_ids: Sequence[str]) -> list[FeedbackRecord]:
        """Return records for ``record_ids`` in the order the ids were given."""
        ids = list(record_ids)
        found: dict[str, FeedbackRecord] = {}
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            for start in range(0, len(ids), _ID_CHUNK_SIZE):
                chunk = ids[start:start + _ID_CHUNK_SIZE]
                placeholders = ", ".join("?" for _ in chunk)
                cursor = await db.execute(
                    f"SELECT {_COLUMNS} FROM feedback WHERE id IN ({placeholders})",
                    chunk,
                )
                for row in await cursor.fetchall():
                    record = _row_to_record(row)
                    found[record.id] = record
        return [found[i] for i in ids if i in found]

    async def mark_processed(
        self,
        record_ids: Sequence[str],
        cycle_id: str | None = None,
    ) -> int:
        """Flip ``processed`` for exactly ``record_ids`` in a single transaction."""
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            return 0

        processed_at = datetime.now(tz=timezone.utc).isoformat()  # noqa: UP017
        updated = 0
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                for start in range(0, len(ids), _ID_CHUNK_SIZE):
                    chunk = ids[start:start + _ID_CHUNK_SIZE]
                    placeholders = ", ".join("?" for _ in chunk)
                    cursor = await db.execute(
                        "UPDATE feedback SET processed = 1, processed_at = ?, cycle_id = ? "
                        f"WHERE processed = 0 AND id IN ({placeholders})",
                        (processed_at, cycle_id, *chunk),
                    )
                    updated += cursor.rowcount
                await db.commit()
        except sqlite3.OperationalError as exc:
            # "database is locked" and friends; nothing was committed.
            raise TransientIOError(
                message=f"Could not mark feedback processed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "feedback_marked_processed",
            cycle_id=cycle_id,
            requested=len(ids),
            updated=updated,
        )
        return updated

    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
        return "sqlite_feedback"
