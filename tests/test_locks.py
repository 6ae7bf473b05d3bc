"""Tests for the allocation lock."""

import asyncio

import pytest

from k8s_warm_pool.locks import AllocationLock


class TestAllocationLock:
    """Test mutual exclusion and release guarantees."""

    @pytest.mark.asyncio
    async def test_holders_are_serialized(self) -> None:
        """Bodies never overlap and run in arrival order."""
        lock = AllocationLock()
        active = 0
        max_active = 0
        order: list[int] = []

        async def worker(i: int) -> None:
            nonlocal active, max_active
            async with lock.hold():
                active += 1
                max_active = max(max_active, active)
                await asyncio.sleep(0.001)
                order.append(i)
                active -= 1

        await asyncio.gather(*(worker(i) for i in range(5)))

        assert max_active == 1
        assert order == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_released_on_exception(self) -> None:
        """A failing body still releases the lock."""
        lock = AllocationLock()

        with pytest.raises(RuntimeError):
            async with lock.hold():
                msg = "boom"
                raise RuntimeError(msg)

        assert not lock.locked
        assert lock.waiting == 0

    @pytest.mark.asyncio
    async def test_waiting_count(self) -> None:
        """Queued callers are counted while the lock is held."""
        lock = AllocationLock()
        release = asyncio.Event()

        async def holder() -> None:
            async with lock.hold():
                await release.wait()

        first = asyncio.create_task(holder())
        second = asyncio.create_task(holder())
        await asyncio.sleep(0.01)

        assert lock.locked
        assert lock.waiting == 2

        release.set()
        await asyncio.gather(first, second)

        assert not lock.locked
        assert lock.waiting == 0
