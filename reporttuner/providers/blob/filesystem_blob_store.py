"""Local-filesystem blob store.

Keys map to paths under ``root``; ``training-data/2026-10-19T12:00:00Z.jsonl``
lands at ``<root>/training-data/2026-10-19T12-00-00Z.jsonl`` (colons are
not portable in file names).  Writes go to a temp file first and are
renamed into place, so a blob is either fully present or absent.
File I/O runs in a worker thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path, PurePosixPath

import structlog

from reporttuner.interfaces.blob_store import IBlobStore
from reporttuner.utils.errors import TransientIOError

logger = structlog.get_logger(logger_name=__name__)


class FilesystemBlobStore(IBlobStore):
    """Blob store backed by a directory tree."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _path_for(self, key: str) -> Path:
        parts = PurePosixPath(key.replace(":", "-")).parts
        if not parts or any(p in ("..", "/") for p in parts):
            msg = f"Invalid blob key: {key!r}"
            raise ValueError(msg)
        return self._root.joinpath(*parts)

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".tmp")
            tmp.write_bytes(data)
            os.replace(tmp, path)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise TransientIOError(
                message=f"Failed to write blob {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info(
            "blob_written",
            key=key,
            path=str(path),
            bytes=len(data),
            content_type=content_type,
        )

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path_for(key).exists)

    async def get(self, key: str) -> bytes | None:
        path = self._path_for(key)
        if not await asyncio.to_thread(path.exists):
            return None
        return await asyncio.to_thread(path.read_bytes)

    def get_provider_name(self) -> str:
        return "filesystem_blob"
