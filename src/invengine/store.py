"""
Investigation storage

Holds live contexts, the plans they execute, and terminal results. The
controller is the only writer; every call it makes for one investigation
id happens under that id's lock.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .models import InvestigationContext, InvestigationPlan, InvestigationResult

logger = logging.getLogger(__name__)


class InvestigationStore(ABC):
    """Abstract repository for investigation state"""

    @abstractmethod
    async def get_context(self, investigation_id: str) -> Optional[InvestigationContext]:
        """Return a copy of the live context, or None"""

    @abstractmethod
    async def put_context(
        self, investigation_id: str, context: InvestigationContext
    ) -> None:
        """Insert or replace the live context"""

    @abstractmethod
    async def delete_context(self, investigation_id: str) -> bool:
        """Remove the live context; True if it existed"""

    @abstractmethod
    async def get_plan(self, plan_id: str) -> Optional[InvestigationPlan]:
        """Return a plan by id"""

    @abstractmethod
    async def put_plan(self, plan: InvestigationPlan) -> None:
        """Store a plan under its own id"""

    @abstractmethod
    async def delete_plan(self, plan_id: str) -> bool:
        """Remove a plan; True if it existed"""

    @abstractmethod
    async def get_result(self, investigation_id: str) -> Optional[InvestigationResult]:
        """Return a copy of the terminal result, or None"""

    @abstractmethod
    async def put_result(
        self, investigation_id: str, result: InvestigationResult
    ) -> None:
        """Store the terminal result"""

    @abstractmethod
    async def list_contexts(self) -> list[tuple[str, InvestigationContext]]:
        """All live contexts as (investigation_id, context) pairs"""

    @abstractmethod
    async def list_results(self) -> list[InvestigationResult]:
        """All terminal results, oldest completion first"""


class InMemoryInvestigationStore(InvestigationStore):
    """
    Process-local store

    Values are deep-copied on the way in and out, so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._contexts: dict[str, InvestigationContext] = {}
        self._plans: dict[str, InvestigationPlan] = {}
        self._results: dict[str, InvestigationResult] = {}

    async def get_context(self, investigation_id: str) -> Optional[InvestigationContext]:
        context = self._contexts.get(investigation_id)
        return context.model_copy(deep=True) if context is not None else None

    async def put_context(
        self, investigation_id: str, context: InvestigationContext
    ) -> None:
        self._contexts[investigation_id] = context.model_copy(deep=True)

    async def delete_context(self, investigation_id: str) -> bool:
        return self._contexts.pop(investigation_id, None) is not None

    async def get_plan(self, plan_id: str) -> Optional[InvestigationPlan]:
        # Plans are frozen; sharing is safe
        return self._plans.get(plan_id)

    async def put_plan(self, plan: InvestigationPlan) -> None:
        self._plans[plan.id] = plan

    async def delete_plan(self, plan_id: str) -> bool:
        return self._plans.pop(plan_id, None) is not None

    async def get_result(self, investigation_id: str) -> Optional[InvestigationResult]:
        result = self._results.get(investigation_id)
        return result.model_copy(deep=True) if result is not None else None

    async def put_result(
        self, investigation_id: str, result: InvestigationResult
    ) -> None:
        self._results[investigation_id] = result.model_copy(deep=True)

    async def list_contexts(self) -> list[tuple[str, InvestigationContext]]:
        return [
            (investigation_id, context.model_copy(deep=True))
            for investigation_id, context in self._contexts.items()
        ]

    async def list_results(self) -> list[InvestigationResult]:
        results = sorted(self._results.values(), key=lambda r: r.completed_at)
        return [result.model_copy(deep=True) for result in results]

    def stats(self) -> dict[str, int]:
        return {
            "contexts": len(self._contexts),
            "plans": len(self._plans),
            "results": len(self._results),
        }
