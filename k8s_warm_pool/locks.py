"""Mutual exclusion for warm pod allocation."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class AllocationLock:
    """Serializes allocation requests end-to-end.

    Each holder waits for the previous holder to finish and always releases,
    including when the guarded body raises. Waiters are served in arrival
    order.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._waiting = 0

    @property
    def locked(self) -> bool:
        """Whether an allocation currently holds the lock."""
        return self._lock.locked()

    @property
    def waiting(self) -> int:
        """Number of callers queued or holding the lock."""
        return self._waiting

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """Acquire the lock for the duration of the ``async with`` block."""
        self._waiting += 1
        try:
            async with self._lock:
                yield
        finally:
            self._waiting -= 1
