"""
Test suite for phase execution and significance assessment
"""

import pytest

from conftest import FakeDataSource, ScriptedAIProvider, make_plan, rows_result
from invengine.adapters.session import SessionOptions
from invengine.exceptions import RequiredQueryFailedError
from invengine.executor import PhaseExecutor, RowCountSignificancePolicy, SignificancePolicy
from invengine.models import InvestigationContext, InvestigationProgress, InvestigationQuery


def make_context(plan, session_id="session-1"):
    return InvestigationContext(
        plan_id=plan.id,
        session_id=session_id,
        progress=InvestigationProgress(
            total_phases=len(plan.phases), total_queries=plan.total_queries
        ),
    )


class EverythingCritical(SignificancePolicy):
    def assess(self, result, query):
        return "critical"


class TestRowCountSignificancePolicy:
    """Test the default row-count thresholds"""

    @pytest.mark.parametrize(
        "rows,expected",
        [
            (0, "informational"),
            (100, "informational"),
            (101, "important"),
            (1000, "important"),
            (1001, "critical"),
        ],
    )
    def test_thresholds(self, rows, expected):
        policy = RowCountSignificancePolicy()
        query = InvestigationQuery(purpose="p", query="q")

        assert policy.assess(rows_result(rows), query) == expected

    def test_from_config(self, test_config):
        test_config.investigation.critical_row_threshold = 10
        test_config.investigation.important_row_threshold = 5

        policy = RowCountSignificancePolicy.from_config(test_config)

        query = InvestigationQuery(purpose="p", query="q")
        assert policy.assess(rows_result(11), query) == "critical"
        assert policy.assess(rows_result(6), query) == "important"


class TestPhaseExecutor:
    """Test PhaseExecutor behaviour"""

    @pytest.mark.asyncio
    async def test_executes_queries_in_order(self, test_config):
        plan = make_plan([[("a", True), ("b", False), ("c", True)]])
        datasource = FakeDataSource(test_config, {"a": 1500, "b": 150, "c": 3})
        ai = ScriptedAIProvider(analysis={"a": "many rows"})
        executor = PhaseExecutor(datasource, ai, config=test_config)
        context = make_context(plan)

        returned = await executor.execute_phase(plan.phases[0], context)

        assert returned is context
        assert datasource.executed == ["a", "b", "c"]
        assert [e.significance for e in context.evidence] == [
            "critical",
            "important",
            "informational",
        ]
        assert context.evidence[0].summary == "Check a: many rows"
        assert context.evidence[1].summary == "Check b: Query executed successfully"
        assert context.progress.completed_queries == 3
        assert context.current_phase_id == plan.phases[0].id
        assert context.current_query_id == plan.phases[0].queries[-1].id

    @pytest.mark.asyncio
    async def test_evidence_references_phase_and_query(self, test_config):
        plan = make_plan([[("a", True)]])
        executor = PhaseExecutor(
            FakeDataSource(test_config), ScriptedAIProvider(), config=test_config
        )
        context = make_context(plan)

        await executor.execute_phase(plan.phases[0], context)

        evidence = context.evidence[0]
        assert evidence.phase_id == plan.phases[0].id
        assert evidence.query_id == plan.phases[0].queries[0].id
        assert evidence.analysis_result.kind == "insights"

    @pytest.mark.asyncio
    async def test_optional_failure_continues(self, test_config):
        plan = make_plan([[("a", False), ("b", True)]])
        datasource = FakeDataSource(test_config, {"a": RuntimeError("boom")})
        executor = PhaseExecutor(datasource, ScriptedAIProvider(), config=test_config)
        context = make_context(plan)

        await executor.execute_phase(plan.phases[0], context)

        assert datasource.executed == ["a", "b"]
        assert context.progress.failed_queries == 1
        assert context.progress.completed_queries == 1
        assert context.failed_query_ids == [plan.phases[0].queries[0].id]

    @pytest.mark.asyncio
    async def test_required_failure_aborts_phase(self, test_config):
        plan = make_plan([[("a", True), ("b", True), ("c", True)]])
        datasource = FakeDataSource(test_config, {"b": RuntimeError("backend down")})
        executor = PhaseExecutor(datasource, ScriptedAIProvider(), config=test_config)
        context = make_context(plan)

        with pytest.raises(RequiredQueryFailedError) as exc_info:
            await executor.execute_phase(plan.phases[0], context)

        assert exc_info.value.query_id == plan.phases[0].queries[1].id
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert datasource.executed == ["a", "b"]
        assert context.progress.completed_queries == 1
        assert context.progress.failed_queries == 1
        assert context.progress.skipped_queries == 1
        assert context.skipped_query_ids == [plan.phases[0].queries[2].id]

    @pytest.mark.asyncio
    async def test_analysis_failure_counts_as_query_failure(self, test_config):
        plan = make_plan([[("a", False)]])
        ai = ScriptedAIProvider(analysis={"a": ValueError("model unavailable")})
        executor = PhaseExecutor(FakeDataSource(test_config), ai, config=test_config)
        context = make_context(plan)

        await executor.execute_phase(plan.phases[0], context)

        assert context.evidence == []
        assert context.progress.failed_queries == 1

    @pytest.mark.asyncio
    async def test_rerun_resumes_and_clears_failure(self, test_config):
        plan = make_plan([[("a", True), ("b", True)]])
        datasource = FakeDataSource(test_config, {"b": RuntimeError("flaky")})
        executor = PhaseExecutor(datasource, ScriptedAIProvider(), config=test_config)
        context = make_context(plan)

        with pytest.raises(RequiredQueryFailedError):
            await executor.execute_phase(plan.phases[0], context)
        with pytest.raises(RequiredQueryFailedError):
            await executor.execute_phase(plan.phases[0], context)

        assert context.progress.failed_queries == 1

        del datasource.responses["b"]
        await executor.execute_phase(plan.phases[0], context)

        assert datasource.executed == ["a", "b", "b", "b"]
        assert context.progress.completed_queries == 2
        assert context.progress.failed_queries == 0
        assert context.failed_query_ids == []
        assert len(context.evidence) == 2

    @pytest.mark.asyncio
    async def test_skipped_queries_run_on_retry(self, test_config):
        plan = make_plan([[("a", True), ("b", True), ("c", False), ("d", True)]])
        datasource = FakeDataSource(test_config, {"b": RuntimeError("flaky")})
        executor = PhaseExecutor(datasource, ScriptedAIProvider(), config=test_config)
        context = make_context(plan)

        with pytest.raises(RequiredQueryFailedError):
            await executor.execute_phase(plan.phases[0], context)
        with pytest.raises(RequiredQueryFailedError):
            await executor.execute_phase(plan.phases[0], context)

        assert context.progress.skipped_queries == 2
        progress = context.progress
        assert (
            progress.completed_queries + progress.failed_queries + progress.skipped_queries
            <= progress.total_queries
        )

        del datasource.responses["b"]
        await executor.execute_phase(plan.phases[0], context)

        assert datasource.executed == ["a", "b", "b", "b", "c", "d"]
        assert context.progress.completed_queries == 4
        assert context.progress.skipped_queries == 0
        assert context.skipped_query_ids == []

    @pytest.mark.asyncio
    async def test_pluggable_significance_policy(self, test_config):
        plan = make_plan([[("a", True)]])
        executor = PhaseExecutor(
            FakeDataSource(test_config, {"a": 0}),
            ScriptedAIProvider(),
            significance_policy=EverythingCritical(),
            config=test_config,
        )
        context = make_context(plan)

        await executor.execute_phase(plan.phases[0], context)

        assert context.evidence[0].significance == "critical"

    @pytest.mark.asyncio
    async def test_records_session_history(self, test_config, session_manager):
        plan = make_plan([[("a", True), ("b", False)]])
        session = await session_manager.create_session(SessionOptions())
        datasource = FakeDataSource(test_config, {"b": RuntimeError("nope")})
        executor = PhaseExecutor(
            datasource, ScriptedAIProvider(), session_manager=session_manager, config=test_config
        )
        context = make_context(plan, session_id=session.session_id)

        await executor.execute_phase(plan.phases[0], context)

        history = session.detailed_history
        assert [entry.query for entry in history] == ["a", "b"]
        assert history[0].reason is None
        assert history[1].reason == "nope"
