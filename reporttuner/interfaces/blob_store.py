"""Abstract base class for durable blob storage (the training-data archive)."""

from __future__ import annotations

from abc import ABC, abstractmethod


class IBlobStore(ABC):
    """Contract for write-once archival blob storage.

    Implementations raise :class:`~reporttuner.utils.errors.TransientIOError`
    for failures worth retrying.
    """

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> None:
        """Persist ``data`` under ``key``."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return ``True`` if a blob is already stored under ``key``."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return the blob stored under ``key``, or ``None``."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
