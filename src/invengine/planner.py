"""
Investigation plan generation

Asks the AI adapter for a phased KQL plan and normalizes whatever comes
back into an immutable InvestigationPlan. When the AI output is unusable
a deterministic single-phase plan is produced instead.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from .adapters.ai import AIProvider, request_json
from .config import InvengineConfig, get_config
from .models import (
    InvestigationPhase,
    InvestigationPlan,
    InvestigationProblem,
    InvestigationQuery,
    InvestigationType,
)
from .observability.metrics import get_metrics
from .observability.tracer import set_attribute, trace_async
from .prompts import PromptManager

logger = logging.getLogger(__name__)

DEFAULT_PLAN_REASONING = "Default investigation plan due to AI generation failure"

RECENT_ACTIVITY_QUERIES: dict[str, tuple[str, str]] = {
    "performance": (
        "Get recent request overview",
        "requests | where timestamp > ago(1h) "
        "| summarize count(), avg(duration) by bin(timestamp, 5m) | order by timestamp",
    ),
    "availability": (
        "Get recent exception overview",
        "exceptions | where timestamp > ago(1h) "
        "| summarize count() by type, bin(timestamp, 5m) | order by timestamp",
    ),
    "data-quality": (
        "Get recent data ingestion overview",
        "union requests, traces, customEvents | where timestamp > ago(1h) "
        "| summarize count() by itemType, bin(timestamp, 5m) | order by timestamp",
    ),
    "dependencies": (
        "Get recent dependency call overview",
        "dependencies | where timestamp > ago(1h) "
        "| summarize count(), avg(duration) by target, success | order by count_ desc",
    ),
}


def default_phases(investigation_type: InvestigationType) -> list[InvestigationPhase]:
    """Single required recent-activity check for the given type"""
    purpose, query = RECENT_ACTIVITY_QUERIES.get(
        investigation_type, RECENT_ACTIVITY_QUERIES["performance"]
    )
    return [
        InvestigationPhase(
            name="Initial Analysis",
            description="Basic data collection and analysis",
            priority="high",
            queries=[
                InvestigationQuery(
                    purpose=purpose,
                    query=query,
                    expected_outcome="Understanding of recent activity patterns",
                    confidence=0.9,
                    required=True,
                )
            ],
        )
    ]


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _parse_query(data: dict[str, Any]) -> InvestigationQuery:
    fields: dict[str, Any] = {
        "purpose": str(_pick(data, "purpose", "description", default="")),
        "query": str(_pick(data, "query", "kqlQuery", "kql_query", "kql", default="")),
        "expected_outcome": str(
            _pick(data, "expectedOutcome", "expected_outcome", default="")
        ),
        "required": bool(data.get("required", False)),
    }
    if data.get("id"):
        fields["id"] = str(data["id"])
    if data.get("confidence") is not None:
        fields["confidence"] = float(data["confidence"])
    return InvestigationQuery(**fields)


def _parse_phase(data: dict[str, Any], index: int) -> InvestigationPhase:
    priority = str(data.get("priority", "medium")).lower()
    fields: dict[str, Any] = {
        "name": str(data.get("name") or f"Phase {index + 1}"),
        "description": str(data.get("description", "")),
        "priority": priority if priority in ("high", "medium", "low") else "medium",
        "queries": [_parse_query(q) for q in data.get("queries") or []],
        "dependencies": [str(d) for d in data.get("dependencies") or []],
    }
    if data.get("id"):
        fields["id"] = str(data["id"])
    estimated = _pick(data, "estimatedTime", "estimated_time")
    if estimated is not None:
        fields["estimated_time"] = int(estimated)
    return InvestigationPhase(**fields)


class PlanGenerator:
    def __init__(
        self,
        ai_provider: AIProvider,
        prompt_manager: Optional[PromptManager] = None,
        config: Optional[InvengineConfig] = None,
    ):
        self.ai_provider = ai_provider
        self.config = config or get_config()
        self.prompt_manager = prompt_manager or PromptManager(
            self.config.prompts.prompts_dir
        )

    def _render_prompt(self, problem: InvestigationProblem, investigation_type: str) -> str:
        template_key = self.config.prompts.planning_template
        meta = self.prompt_manager.load_template_meta(template_key)
        focus_areas = meta.get("focus_areas", {}).get(investigation_type, [])
        return self.prompt_manager.render_template(
            template_key,
            {
                "article": "an" if investigation_type[0] in "aeiou" else "a",
                "investigation_type": investigation_type.replace("-", " "),
                "focus_areas": focus_areas,
                "problem": problem.model_dump(),
            },
        )

    @trace_async("investigation.generate_plan")
    async def generate(self, problem: InvestigationProblem) -> InvestigationPlan:
        investigation_type: InvestigationType = problem.type or "performance"
        set_attribute("plan.investigation_type", investigation_type)

        prompt = self._render_prompt(problem, investigation_type)
        outcome = await request_json(self.ai_provider, prompt, "planning")
        if not outcome.ok:
            return self.default_plan(problem, outcome.error)

        try:
            plan = self._build_plan(problem, investigation_type, outcome.payload)
        except (ValidationError, ValueError, TypeError, AttributeError, OverflowError) as e:
            return self.default_plan(problem, f"invalid plan payload: {e}")

        set_attribute("plan.phases", len(plan.phases))
        set_attribute("plan.source", plan.source)
        logger.info(f"Generated investigation plan with {len(plan.phases)} phases")
        return plan

    def _build_plan(
        self,
        problem: InvestigationProblem,
        investigation_type: InvestigationType,
        payload: dict[str, Any],
    ) -> InvestigationPlan:
        raw_phases = payload.get("phases")
        if raw_phases is not None and not isinstance(raw_phases, list):
            raise ValueError("'phases' must be a list")

        phases = [_parse_phase(p, i) for i, p in enumerate(raw_phases or [])]
        source = "ai"
        if not phases:
            logger.warning("AI plan contained no phases, using default phases")
            self._record_fallback()
            phases = default_phases(investigation_type)
            source = "default"

        investigation = self.config.investigation
        estimated = _pick(payload, "estimatedTotalTime", "estimated_total_time")
        confidence = payload.get("confidence")

        return InvestigationPlan(
            problem=problem,
            detected_type=investigation_type,
            phases=phases,
            estimated_total_time=(
                int(estimated) if estimated is not None else investigation.default_estimated_time
            ),
            confidence=(
                float(confidence) if confidence is not None else investigation.ai_plan_confidence
            ),
            reasoning=str(payload.get("reasoning", "")),
            source=source,
        )

    def default_plan(
        self, problem: InvestigationProblem, reason: Optional[str] = None
    ) -> InvestigationPlan:
        logger.warning(f"Plan generation failed, using default plan: {reason}")
        self._record_fallback()
        investigation_type: InvestigationType = problem.type or "performance"
        return InvestigationPlan(
            problem=problem,
            detected_type=investigation_type,
            phases=default_phases(investigation_type),
            estimated_total_time=self.config.investigation.default_estimated_time,
            confidence=self.config.investigation.default_plan_confidence,
            reasoning=DEFAULT_PLAN_REASONING,
            source="default",
        )

    def _record_fallback(self) -> None:
        metrics = get_metrics()
        if metrics:
            metrics.record_ai_fallback("planner")
