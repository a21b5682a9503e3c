"""
Pytest configuration and shared fixtures for invengine tests

Provides a scripted AI provider, a fake telemetry data source, test
configuration and plan builders.
"""

import asyncio
import json
from typing import Any, Optional, Union

import pytest

from invengine.adapters.ai import AIProvider
from invengine.adapters.session import InMemorySessionManager
from invengine.config import InvengineConfig, LLMRouterConfig
from invengine.controller import InvestigationController
from invengine.datasources.base import DataSourceProvider
from invengine.exceptions import AIAdapterError
from invengine.models import (
    AnalysisRequest,
    InsightsAnalysis,
    InvestigationPhase,
    InvestigationPlan,
    InvestigationProblem,
    InvestigationQuery,
    QueryColumn,
    QueryResult,
    QueryTable,
)
from invengine.store import InMemoryInvestigationStore


def rows_result(count: int) -> QueryResult:
    """QueryResult with ``count`` single-column rows"""
    return QueryResult(
        tables=[
            QueryTable(
                name="PrimaryResult",
                columns=[QueryColumn(name="value", type="long")],
                rows=[[i] for i in range(count)],
            )
        ]
    )


class FakeDataSource(DataSourceProvider):
    """
    Data source answering from a query-text map

    Values are a QueryResult, a row count, or an exception to raise.
    Unknown queries return a single row.
    """

    name = "fake"

    def __init__(self, config: InvengineConfig, responses: Optional[dict[str, Any]] = None):
        super().__init__(config)
        self.responses = responses or {}
        self.executed: list[str] = []
        self.delay = 0.0

    async def execute_query(self, query: str) -> QueryResult:
        self.executed.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(query, 1)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, int):
            return rows_result(response)
        return response

    async def validate_connection(self):
        return True, None


class ScriptedAIProvider(AIProvider):
    """
    AI provider with canned text per template type

    ``responses`` values are strings (returned as-is), dicts (returned as
    JSON) or exceptions (raised). ``analysis`` maps query text to a
    headline, or to an exception.
    """

    def __init__(
        self,
        responses: Optional[dict[str, Union[str, dict, Exception]]] = None,
        analysis: Optional[dict[str, Any]] = None,
        recommendations: Optional[list[str]] = None,
    ):
        self.responses = responses or {}
        self.analysis = analysis or {}
        self.recommendations = recommendations or []
        self.prompts: list[tuple[str, str]] = []

    async def generate_response(self, prompt: str, template_type: str = "default") -> str:
        self.prompts.append((template_type, prompt))
        response = self.responses.get(template_type)
        if response is None:
            raise AIAdapterError(f"No scripted response for {template_type}")
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return response

    async def analyze_query_result(self, request: AnalysisRequest):
        outcome = self.analysis.get(request.original_query, "")
        if isinstance(outcome, Exception):
            raise outcome
        return InsightsAnalysis(
            ai_insights=outcome,
            recommendations=list(self.recommendations),
            follow_up_queries=[],
        )


def make_plan(
    phases: list[list[tuple[str, bool]]],
    problem: Optional[InvestigationProblem] = None,
    detected_type: str = "performance",
    estimated_total_time: int = 300,
) -> InvestigationPlan:
    """
    Build a plan from nested (query text, required) tuples, one list per phase
    """
    return InvestigationPlan(
        problem=problem or InvestigationProblem(description="API responses are slow"),
        detected_type=detected_type,
        phases=[
            InvestigationPhase(
                name=f"Phase {i + 1}",
                queries=[
                    InvestigationQuery(purpose=f"Check {text}", query=text, required=required)
                    for text, required in queries
                ],
            )
            for i, queries in enumerate(phases)
        ],
        estimated_total_time=estimated_total_time,
    )


def planning_payload(phases: list[list[tuple[str, bool]]]) -> dict[str, Any]:
    """AI-style camelCase planning payload"""
    return {
        "phases": [
            {
                "name": f"Phase {i + 1}",
                "description": "scripted phase",
                "priority": "high",
                "queries": [
                    {
                        "purpose": f"Check {text}",
                        "query": text,
                        "expectedOutcome": "something",
                        "confidence": 0.9,
                        "required": required,
                    }
                    for text, required in queries
                ],
            }
            for i, queries in enumerate(phases)
        ],
        "estimatedTotalTime": 120,
        "confidence": 0.85,
        "reasoning": "scripted plan",
    }


@pytest.fixture
def test_config():
    """Provide a test configuration with safe defaults"""
    config = InvengineConfig()
    config.llm.routers["openai_default"] = LLMRouterConfig(
        provider="mock", model="mock-gpt", api_key="test-key"
    )
    config.telemetry.enabled = False
    return config


@pytest.fixture
def fake_datasource(test_config):
    return FakeDataSource(test_config)


@pytest.fixture
def scripted_ai():
    return ScriptedAIProvider(
        responses={
            "classification": {
                "type": "performance",
                "confidence": 0.9,
                "reasoning": "slow responses",
            },
            "planning": planning_payload([[("q1", True)], [("q2", True)]]),
        }
    )


@pytest.fixture
def session_manager():
    return InMemorySessionManager()


@pytest.fixture
def store():
    return InMemoryInvestigationStore()


@pytest.fixture
def controller(scripted_ai, fake_datasource, session_manager, store, test_config):
    return InvestigationController(
        ai_provider=scripted_ai,
        data_source=fake_datasource,
        session_manager=session_manager,
        store=store,
        config=test_config,
    )


@pytest.fixture
def sample_problem():
    return InvestigationProblem(
        description="Requests are slow at peak hours",
        severity="high",
        affected_services=["orders-api"],
    )
