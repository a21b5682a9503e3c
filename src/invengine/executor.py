"""
Phase execution

Runs the queries of one phase strictly in order, turns each successful
result into an evidence record, and tracks per-query outcomes on the
investigation context.

Re-running a phase after a required-query failure resumes it: queries
that already produced evidence are not executed again, and a query that
failed before and now succeeds is no longer counted as failed.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .adapters.ai import AIProvider
from .adapters.session import SessionManager
from .config import InvengineConfig, get_config
from .datasources.base import DataSourceProvider
from .exceptions import QueryExecutionError, RequiredQueryFailedError
from .models import (
    AnalysisRequest,
    InvestigationContext,
    InvestigationEvidence,
    InvestigationPhase,
    InvestigationQuery,
    QueryResult,
    Significance,
    utcnow,
)
from .observability.metrics import get_metrics
from .observability.tracer import add_event, trace_operation

logger = logging.getLogger(__name__)


class SignificancePolicy(ABC):
    """Decides how much a query result matters to the investigation"""

    @abstractmethod
    def assess(self, result: QueryResult, query: InvestigationQuery) -> Significance:
        """Return the significance of one result"""


class RowCountSignificancePolicy(SignificancePolicy):
    """More rows means more signal: above the critical threshold is critical"""

    def __init__(self, critical_threshold: int = 1000, important_threshold: int = 100):
        self.critical_threshold = critical_threshold
        self.important_threshold = important_threshold

    @classmethod
    def from_config(cls, config: InvengineConfig) -> "RowCountSignificancePolicy":
        return cls(
            critical_threshold=config.investigation.critical_row_threshold,
            important_threshold=config.investigation.important_row_threshold,
        )

    def assess(self, result: QueryResult, query: InvestigationQuery) -> Significance:
        total_rows = result.total_rows
        if total_rows > self.critical_threshold:
            return "critical"
        if total_rows > self.important_threshold:
            return "important"
        return "informational"


class PhaseExecutor:
    def __init__(
        self,
        data_source: DataSourceProvider,
        ai_provider: AIProvider,
        significance_policy: Optional[SignificancePolicy] = None,
        session_manager: Optional[SessionManager] = None,
        config: Optional[InvengineConfig] = None,
    ):
        self.data_source = data_source
        self.ai_provider = ai_provider
        self.config = config or get_config()
        self.significance_policy = (
            significance_policy or RowCountSignificancePolicy.from_config(self.config)
        )
        self.session_manager = session_manager

    async def execute_phase(
        self, phase: InvestigationPhase, context: InvestigationContext
    ) -> InvestigationContext:
        """
        Execute every pending query of ``phase``, mutating ``context``

        Raises:
            RequiredQueryFailedError: A required query failed; the context
                keeps whatever the phase accomplished before the failure.
        """
        logger.info(f"Executing phase: {phase.name}")
        context.current_phase_id = phase.id
        done = {e.query_id for e in context.evidence if e.phase_id == phase.id}

        with trace_operation(
            "investigation.phase",
            {"phase.id": phase.id, "phase.name": phase.name, "phase.queries": len(phase.queries)},
        ):
            for index, query in enumerate(phase.queries):
                if query.id in done:
                    logger.debug(f"Query already has evidence, skipping: {query.purpose}")
                    continue

                context.current_query_id = query.id
                if query.id in context.skipped_query_ids:
                    context.skipped_query_ids.remove(query.id)
                    context.progress.skipped_queries -= 1
                context.last_updated_at = utcnow()

                try:
                    evidence = await self._run_query(phase, query)
                except QueryExecutionError as e:
                    self._record_failure(context, query)
                    await self._record_session(context, query, str(e.cause))
                    if query.required:
                        logger.error(f"Required query failed: {query.purpose} - {e.cause}")
                        self._record_skipped(context, phase.queries[index + 1 :], done)
                        raise RequiredQueryFailedError(query.id, query.purpose, e.cause) from e
                    logger.warning(f"Optional query failed, continuing: {query.purpose}")
                    continue

                self._record_success(context, query, evidence)
                await self._record_session(context, query)

        context.last_updated_at = utcnow()
        return context

    async def _run_query(
        self, phase: InvestigationPhase, query: InvestigationQuery
    ) -> InvestigationEvidence:
        with trace_operation(
            "investigation.query",
            {"query.id": query.id, "query.purpose": query.purpose, "query.required": query.required},
        ):
            try:
                result = await self.data_source.execute_query(query.query)
                analysis = await self.ai_provider.analyze_query_result(
                    AnalysisRequest(
                        result=result, original_query=query.query, analysis_type="insights"
                    )
                )
            except Exception as e:
                add_event("query_failed", {"error": str(e)})
                raise QueryExecutionError(query.id, query.purpose, e) from e

            significance = self.significance_policy.assess(result, query)
            headline = analysis.headline or "Query executed successfully"
            return InvestigationEvidence(
                phase_id=phase.id,
                query_id=query.id,
                result=result,
                analysis_result=analysis,
                significance=significance,
                summary=f"{query.purpose}: {headline}",
            )

    def _record_failure(self, context: InvestigationContext, query: InvestigationQuery) -> None:
        if query.id not in context.failed_query_ids:
            context.failed_query_ids.append(query.id)
            context.progress.failed_queries += 1

        metrics = get_metrics()
        if metrics:
            metrics.record_query("failed", query.required)

    def _record_skipped(
        self,
        context: InvestigationContext,
        queries: list[InvestigationQuery],
        done: set[str],
    ) -> None:
        metrics = get_metrics()
        for query in queries:
            if (
                query.id in done
                or query.id in context.failed_query_ids
                or query.id in context.skipped_query_ids
            ):
                continue
            context.skipped_query_ids.append(query.id)
            context.progress.skipped_queries += 1
            if metrics:
                metrics.record_query("skipped", query.required)

    def _record_success(
        self,
        context: InvestigationContext,
        query: InvestigationQuery,
        evidence: InvestigationEvidence,
    ) -> None:
        if query.id in context.failed_query_ids:
            context.failed_query_ids.remove(query.id)
            context.progress.failed_queries -= 1

        context.evidence.append(evidence)
        context.progress.completed_queries += 1

        metrics = get_metrics()
        if metrics:
            metrics.record_query("succeeded", query.required)
            metrics.record_evidence(evidence.significance)

    async def _record_session(
        self,
        context: InvestigationContext,
        query: InvestigationQuery,
        failure: Optional[str] = None,
    ) -> None:
        if self.session_manager is None:
            return
        session = await self.session_manager.get_session(context.session_id)
        if session is not None:
            session.add_to_history(
                query.query, confidence=query.confidence, action="executed", reason=failure
            )
