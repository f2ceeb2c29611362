"""Abstract base class for the config/state store.

Holds two kinds of durable state:

- keyed documents (``upsert`` / ``find_one``): the model registry lives
  under the ``latest_model`` key;
- retraining cycle records: the write-ahead log that lets an
  interrupted cycle resume instead of re-submitting.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from reporttuner.models.cycle import CycleRecord


class IStateStore(ABC):
    """Contract for keyed-document and cycle-record persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables/indices if they don't exist.  Called at startup."""

    @abstractmethod
    async def upsert(self, key: str, fields: dict[str, Any]) -> None:
        """Replace the document stored under ``key`` wholesale."""

    @abstractmethod
    async def find_one(self, key: str) -> dict[str, Any] | None:
        """Return the document stored under ``key``, or ``None``."""

    @abstractmethod
    async def save_cycle(self, cycle: CycleRecord) -> None:
        """Insert or overwrite a cycle record by ``cycle_id``."""

    @abstractmethod
    async def get_cycle(self, cycle_id: str) -> CycleRecord | None:
        """Return one cycle record, or ``None``."""

    @abstractmethod
    async def find_incomplete_cycle(self) -> CycleRecord | None:
        """Return the oldest cycle whose status is not terminal, if any."""

    @abstractmethod
    async def list_cycles(self, limit: int = 20) -> list[CycleRecord]:
        """Return the most recent cycles, newest first."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
