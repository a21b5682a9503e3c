"""
Async semaphores and per-investigation locking

Provides an instrumented semaphore and a manager that hands out one
single-permit semaphore per investigation id, so that operations on the
same investigation serialize while different investigations run freely.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class SemaphoreStats:
    """Statistics for semaphore usage"""

    name: str
    capacity: int
    current_value: int
    total_acquisitions: int
    total_timeouts: int
    average_hold_time: float
    max_hold_time: float

    @property
    def utilization(self) -> float:
        """Current utilization as percentage"""
        if self.capacity == 0:
            return 0.0
        return ((self.capacity - self.current_value) / self.capacity) * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "capacity": self.capacity,
            "current_value": self.current_value,
            "utilization_percent": self.utilization,
            "total_acquisitions": self.total_acquisitions,
            "total_timeouts": self.total_timeouts,
            "average_hold_time": self.average_hold_time,
            "max_hold_time": self.max_hold_time,
        }


class AsyncSemaphore:
    """
    Async semaphore with hold-time statistics and timeout support

    Waiters are served in FIFO order by the underlying asyncio.Semaphore.
    """

    def __init__(self, value: int, name: str = "unnamed"):
        if value < 0:
            raise ValueError("Semaphore value must be non-negative")

        self.name = name
        self.capacity = value
        self._semaphore = asyncio.Semaphore(value)

        self._in_use = 0
        self._waiting = 0
        self._total_acquisitions = 0
        self._total_timeouts = 0
        self._total_hold_time = 0.0
        self._max_hold_time = 0.0

        self._active_acquisitions: dict[int, float] = {}
        self._next_acquisition_id = 0

    @asynccontextmanager
    async def acquire(self, timeout: Optional[float] = None):
        """
        Acquire semaphore with optional timeout

        Raises:
            asyncio.TimeoutError: If timeout is exceeded
        """
        acquisition_id = self._next_acquisition_id
        self._next_acquisition_id += 1

        self._waiting += 1
        try:
            if timeout is not None:
                await asyncio.wait_for(self._semaphore.acquire(), timeout=timeout)
            else:
                await self._semaphore.acquire()
        except asyncio.TimeoutError:
            self._total_timeouts += 1
            logger.warning(
                f"Semaphore '{self.name}' acquisition timeout after {timeout}s"
            )
            raise
        finally:
            self._waiting -= 1

        self._in_use += 1
        self._active_acquisitions[acquisition_id] = time.monotonic()
        self._total_acquisitions += 1
        logger.debug(f"Semaphore '{self.name}' acquired (id={acquisition_id})")

        try:
            yield
        finally:
            hold_time = time.monotonic() - self._active_acquisitions.pop(acquisition_id)
            self._total_hold_time += hold_time
            self._max_hold_time = max(self._max_hold_time, hold_time)
            self._in_use -= 1
            self._semaphore.release()
            logger.debug(f"Semaphore '{self.name}' released (id={acquisition_id})")

    def locked(self) -> bool:
        """Check if semaphore is at capacity (no permits available)"""
        return self._semaphore.locked()

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def waiting(self) -> int:
        """Callers currently blocked in acquire"""
        return self._waiting

    def get_stats(self) -> SemaphoreStats:
        avg_hold_time = (
            self._total_hold_time / self._total_acquisitions
            if self._total_acquisitions
            else 0.0
        )
        return SemaphoreStats(
            name=self.name,
            capacity=self.capacity,
            current_value=self.capacity - self._in_use,
            total_acquisitions=self._total_acquisitions,
            total_timeouts=self._total_timeouts,
            average_hold_time=avg_hold_time,
            max_hold_time=self._max_hold_time,
        )

    def check_leaks(self, max_hold_time: float = 300.0) -> int:
        """
        Count acquisitions held longer than ``max_hold_time`` seconds

        A long-held investigation lock usually means a phase stuck on a
        backend call without a deadline.
        """
        now = time.monotonic()
        leaked_count = 0

        for acquisition_id, acquire_time in list(self._active_acquisitions.items()):
            hold_time = now - acquire_time
            if hold_time > max_hold_time:
                logger.warning(
                    f"Potential semaphore leak in '{self.name}': "
                    f"acquisition {acquisition_id} held for {hold_time:.1f}s"
                )
                leaked_count += 1

        return leaked_count


class InvestigationLockManager:
    """
    Hands out one single-permit semaphore per investigation id

    Locks are created lazily and dropped with ``discard`` once an
    investigation is no longer live and nobody holds or awaits the lock.
    """

    def __init__(self, acquire_timeout: Optional[float] = None):
        self.acquire_timeout = acquire_timeout
        self._locks: dict[str, AsyncSemaphore] = {}

    def get_lock(self, investigation_id: str) -> AsyncSemaphore:
        if investigation_id not in self._locks:
            self._locks[investigation_id] = AsyncSemaphore(
                1, f"investigation:{investigation_id}"
            )
        return self._locks[investigation_id]

    @asynccontextmanager
    async def hold(self, investigation_id: str):
        """Serialize a block of work against one investigation"""
        async with self.get_lock(investigation_id).acquire(self.acquire_timeout):
            yield

    def discard(self, investigation_id: str) -> None:
        """Forget the lock for an id unless someone holds or awaits it"""
        lock = self._locks.get(investigation_id)
        if lock is not None and not lock.locked() and lock.waiting == 0:
            del self._locks[investigation_id]

    def is_busy(self, investigation_id: str) -> bool:
        lock = self._locks.get(investigation_id)
        return lock is not None and lock.locked()

    def list_locks(self) -> dict[str, SemaphoreStats]:
        return {
            investigation_id: lock.get_stats()
            for investigation_id, lock in self._locks.items()
        }

    def check_all_leaks(self, max_hold_time: float = 300.0) -> dict[str, int]:
        """Check every live lock for acquisitions held too long"""
        leak_counts = {}
        for investigation_id, lock in self._locks.items():
            leak_count = lock.check_leaks(max_hold_time)
            if leak_count > 0:
                leak_counts[investigation_id] = leak_count
        return leak_counts
