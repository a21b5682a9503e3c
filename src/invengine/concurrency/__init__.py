"""
Concurrency control for invengine

Per-investigation serialization built on instrumented async semaphores.
"""

from .semaphore import AsyncSemaphore, InvestigationLockManager, SemaphoreStats

__all__ = [
    "AsyncSemaphore",
    "InvestigationLockManager",
    "SemaphoreStats",
]
