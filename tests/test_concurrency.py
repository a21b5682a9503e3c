"""
Tests for async semaphores and per-investigation locks
"""

import asyncio

import pytest

from invengine.concurrency import AsyncSemaphore, InvestigationLockManager


class TestAsyncSemaphore:
    """Test AsyncSemaphore functionality"""

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValueError):
            AsyncSemaphore(-1)

    @pytest.mark.asyncio
    async def test_acquire_release_stats(self):
        semaphore = AsyncSemaphore(2, "test")

        async with semaphore.acquire():
            assert semaphore.in_use == 1
            assert not semaphore.locked()

        stats = semaphore.get_stats()
        assert stats.total_acquisitions == 1
        assert stats.current_value == 2
        assert stats.utilization == 0.0
        assert stats.to_dict()["name"] == "test"

    @pytest.mark.asyncio
    async def test_released_on_exception(self):
        semaphore = AsyncSemaphore(1, "test")

        with pytest.raises(RuntimeError):
            async with semaphore.acquire():
                raise RuntimeError("boom")

        assert semaphore.in_use == 0
        assert not semaphore.locked()

    @pytest.mark.asyncio
    async def test_timeout(self):
        semaphore = AsyncSemaphore(1, "test")

        async with semaphore.acquire():
            with pytest.raises(asyncio.TimeoutError):
                async with semaphore.acquire(timeout=0.01):
                    pass

        assert semaphore.get_stats().total_timeouts == 1

    @pytest.mark.asyncio
    async def test_check_leaks(self):
        semaphore = AsyncSemaphore(1, "test")

        async with semaphore.acquire():
            assert semaphore.check_leaks(max_hold_time=-1.0) == 1
            assert semaphore.check_leaks(max_hold_time=60.0) == 0


class TestInvestigationLockManager:
    """Test per-investigation locking"""

    def test_one_lock_per_id(self):
        manager = InvestigationLockManager()

        assert manager.get_lock("a") is manager.get_lock("a")
        assert manager.get_lock("a") is not manager.get_lock("b")
        assert manager.get_lock("a").capacity == 1

    @pytest.mark.asyncio
    async def test_same_id_serializes(self):
        manager = InvestigationLockManager()
        order = []

        async def work(label):
            async with manager.hold("inv"):
                order.append(f"{label}-start")
                await asyncio.sleep(0.01)
                order.append(f"{label}-end")

        await asyncio.gather(work("first"), work("second"))

        assert order == ["first-start", "first-end", "second-start", "second-end"]

    @pytest.mark.asyncio
    async def test_different_ids_overlap(self):
        manager = InvestigationLockManager()
        order = []

        async def work(investigation_id):
            async with manager.hold(investigation_id):
                order.append(f"{investigation_id}-start")
                await asyncio.sleep(0.01)
                order.append(f"{investigation_id}-end")

        await asyncio.gather(work("a"), work("b"))

        assert order[:2] == ["a-start", "b-start"]

    @pytest.mark.asyncio
    async def test_is_busy_and_discard(self):
        manager = InvestigationLockManager()

        async with manager.hold("inv"):
            assert manager.is_busy("inv")
            manager.discard("inv")
            assert "inv" in manager.list_locks()

        assert not manager.is_busy("inv")
        manager.discard("inv")
        assert manager.list_locks() == {}

    @pytest.mark.asyncio
    async def test_discard_keeps_lock_with_waiters(self):
        manager = InvestigationLockManager()

        async def waiter():
            async with manager.hold("inv"):
                pass

        async with manager.hold("inv"):
            task = asyncio.create_task(waiter())
            await asyncio.sleep(0)
            assert manager.get_lock("inv").waiting == 1

        manager.discard("inv")
        assert "inv" in manager.list_locks()

        await task
        assert manager.get_lock("inv").waiting == 0
        manager.discard("inv")
        assert manager.list_locks() == {}

    @pytest.mark.asyncio
    async def test_acquire_timeout(self):
        manager = InvestigationLockManager(acquire_timeout=0.01)

        async with manager.hold("inv"):
            with pytest.raises(asyncio.TimeoutError):
                async with manager.hold("inv"):
                    pass

    @pytest.mark.asyncio
    async def test_check_all_leaks(self):
        manager = InvestigationLockManager()

        async with manager.hold("inv"):
            assert manager.check_all_leaks(max_hold_time=-1.0) == {"inv": 1}

        assert manager.check_all_leaks(max_hold_time=-1.0) == {}
