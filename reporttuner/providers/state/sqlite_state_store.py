"""SQLite-backed config/state store.

Two tables:

- ``config``: keyed JSON documents (the model registry lives under
  ``latest_model``), replaced wholesale on every upsert.
- ``retraining_cycles``: the cycle write-ahead log, one row per cycle.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from reporttuner.interfaces.state_store import IStateStore
from reporttuner.models.cycle import CycleRecord, CycleStatus
from reporttuner.utils.errors import TransientIOError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/state.db")

_CREATE_CONFIG_SQL = """\
CREATE TABLE IF NOT EXISTS config (
    key         TEXT PRIMARY KEY,
    fields_json TEXT NOT NULL,
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_CREATE_CYCLES_SQL = """\
CREATE TABLE IF NOT EXISTS retraining_cycles (
    cycle_id    TEXT PRIMARY KEY,
    status      TEXT NOT NULL,
    record_json TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_cycles_status ON retraining_cycles(status);",
    "CREATE INDEX IF NOT EXISTS idx_cycles_created ON retraining_cycles(created_at);",
]

_UPSERT_CONFIG_SQL = """\
INSERT INTO config (key, fields_json)
VALUES (?, ?)
ON CONFLICT(key)
DO UPDATE SET fields_json = excluded.fields_json,
              updated_at  = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""

_UPSERT_CYCLE_SQL = """\
INSERT INTO retraining_cycles (cycle_id, status, record_json, created_at, updated_at)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(cycle_id)
DO UPDATE SET status      = excluded.status,
              record_json = excluded.record_json,
              updated_at  = excluded.updated_at;
"""

_TERMINAL_STATUSES = (CycleStatus.MARKED.value, CycleStatus.FAILED.value)


class SQLiteStateStore(IStateStore):
    """SQLite-backed keyed documents plus cycle records."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_CONFIG_SQL)
            await db.execute(_CREATE_CYCLES_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("state_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Keyed documents
    # ------------------------------------------------------------------

    async def upsert(self, key: str, fields: dict[str, Any]) -> None:
        payload = json.dumps(fields, default=str)
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_UPSERT_CONFIG_SQL, (key, payload))
                await db.commit()
        except sqlite3.OperationalError as exc:
            raise TransientIOError(
                message=f"State upsert failed for {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("state_upserted", key=key)

    async def find_one(self, key: str) -> dict[str, Any] | None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    "SELECT fields_json FROM config WHERE key = ?", (key,)
                )
                row = await cursor.fetchone()
        except sqlite3.OperationalError as exc:
            raise TransientIOError(
                message=f"State read failed for {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return json.loads(row[0]) if row else None

    # ------------------------------------------------------------------
    # Cycle write-ahead log
    # ------------------------------------------------------------------

    async def save_cycle(self, cycle: CycleRecord) -> None:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _UPSERT_CYCLE_SQL,
                    (
                        cycle.cycle_id,
                        cycle.status.value,
                        cycle.model_dump_json(),
                        cycle.created_at.isoformat(),
                        cycle.updated_at.isoformat(),
                    ),
                )
                await db.commit()
        except sqlite3.OperationalError as exc:
            raise TransientIOError(
                message=f"Cycle save failed for {cycle.cycle_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def get_cycle(self, cycle_id: str) -> CycleRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT record_json FROM retraining_cycles WHERE cycle_id = ?",
                (cycle_id,),
            )
            row = await cursor.fetchone()
        return CycleRecord.model_validate_json(row[0]) if row else None

    async def find_incomplete_cycle(self) -> CycleRecord | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT record_json FROM retraining_cycles "
                "WHERE status NOT IN (?, ?) ORDER BY created_at LIMIT 1",
                _TERMINAL_STATUSES,
            )
            row = await cursor.fetchone()
        return CycleRecord.model_validate_json(row[0]) if row else None

    async def list_cycles(self, limit: int = 20) -> list[CycleRecord]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT record_json FROM retraining_cycles "
                "ORDER BY created_at DESC LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        return [CycleRecord.model_validate_json(r[0]) for r in rows]

    def get_provider_name(self) -> str:
        return "sqlite_state"
