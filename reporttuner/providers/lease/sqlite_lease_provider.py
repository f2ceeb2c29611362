"""SQLite-backed retraining lease.

The lease row is claimed with a single atomic upsert that only succeeds
when no row exists, the row is already ours, or the previous holder's
lease has expired.  A crashed holder therefore blocks retraining for at
most ``ttl_seconds``.
"""

from __future__ import annotations

import time
from pathlib import Path

import aiosqlite
import structlog

from reporttuner.interfaces.lease_provider import ILeaseProvider

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS leases (
    name        TEXT PRIMARY KEY,
    holder      TEXT NOT NULL,
    expires_at  REAL NOT NULL
);
"""

_ACQUIRE_SQL = """\
INSERT INTO leases (name, holder, expires_at)
VALUES (?, ?, ?)
ON CONFLICT(name)
DO UPDATE SET holder     = excluded.holder,
              expires_at = excluded.expires_at
WHERE leases.expires_at < ? OR leases.holder = excluded.holder;
"""

_RENEW_SQL = "UPDATE leases SET expires_at = ? WHERE name = ? AND holder = ?;"


class SQLiteLeaseProvider(ILeaseProvider):
    """Named expiring leases stored next to the feedback table."""

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            await db.commit()

    async def acquire(self, name: str, holder: str, ttl_seconds: int) -> bool:
        now = time.time()
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                _ACQUIRE_SQL, (name, holder, now + ttl_seconds, now)
            )
            acquired = cursor.rowcount > 0
            await db.commit()

        if acquired:
            logger.debug("lease_acquired", lease=name, holder=holder, ttl_s=ttl_seconds)
        else:
            logger.info("lease_busy", lease=name, holder=holder)
        return acquired

    async def renew(self, name: str, holder: str, ttl_seconds: int) -> bool:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_RENEW_SQL, (time.time() + ttl_seconds, name, holder))
            renewed = cursor.rowcount > 0
            await db.commit()

        if not renewed:
            logger.warning("lease_lost", lease=name, holder=holder)
        return renewed

    async def release(self, name: str, holder: str) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "DELETE FROM leases WHERE name = ? AND holder = ?", (name, holder)
            )
            await db.commit()
        logger.debug("lease_released", lease=name, holder=holder)
