"""Abstract base class for the retraining lease.

At most one retraining cycle may run against a feedback store at a time.
A lease is a named, expiring lock: a holder that crashes without
releasing it blocks other cycles only until ``ttl_seconds`` elapses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ILeaseProvider(ABC):
    """Contract for named, expiring mutual-exclusion leases."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create backing tables if needed."""

    @abstractmethod
    async def acquire(self, name: str, holder: str, ttl_seconds: int) -> bool:
        """Try to take the lease ``name`` for ``holder``.

        Returns
        -------
        bool
            ``True`` if ``holder`` now owns the lease; ``False`` if another
            holder owns an unexpired lease.  Never blocks waiting.
        """

    @abstractmethod
    async def release(self, name: str, holder: str) -> None:
        """Release the lease if ``holder`` owns it; otherwise a no-op."""

    @abstractmethod
    async def renew(self, name: str, holder: str, ttl_seconds: int) -> bool:
        """Push the expiry of ``holder``'s lease out to ``ttl_seconds`` from now.

        Succeeds while ``holder`` still owns the row, even if its TTL has
        lapsed, because nobody else has claimed it in the meantime.

        Returns
        -------
        bool
            ``False`` if the lease was released or taken over by another
            holder; the caller no longer has exclusive access.
        """
