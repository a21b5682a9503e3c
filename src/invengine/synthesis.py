"""
Root-cause and recommendation synthesis

Turns the evidence accumulated by an investigation into its terminal
result. Deterministic: the same plan and context always yield the same
analysis, recommendations and summary.
"""

import logging
from typing import Optional

from .models import (
    BusinessImpact,
    ContributingFactor,
    ImmediateAction,
    InvestigationContext,
    InvestigationEvidence,
    InvestigationPlan,
    InvestigationRecommendations,
    InvestigationResult,
    LongTermAction,
    PrimaryCause,
    RootCauseAnalysis,
    ShortTermAction,
    TimelineEntry,
    utcnow,
)

logger = logging.getLogger(__name__)

CATEGORY_BY_TYPE = {
    "performance": "application",
    "availability": "infrastructure",
    "data-quality": "data",
    "dependencies": "dependencies",
}


def _unique(items: list[tuple[str, str]]) -> list[tuple[str, str]]:
    seen: set[str] = set()
    unique = []
    for text, source in items:
        if text not in seen:
            seen.add(text)
            unique.append((text, source))
    return unique


class InvestigationSynthesizer:
    def root_cause_analysis(
        self, plan: InvestigationPlan, evidence: list[InvestigationEvidence]
    ) -> RootCauseAnalysis:
        critical = [e for e in evidence if e.significance == "critical"]
        important = [e for e in evidence if e.significance == "important"]

        if critical:
            primary_cause = PrimaryCause(
                description=f"Analysis indicates issues found in {len(critical)} critical areas",
                confidence=0.8,
                evidence=[e.id for e in critical],
                category=CATEGORY_BY_TYPE.get(plan.detected_type, "application"),
            )
        else:
            primary_cause = PrimaryCause(
                description="No critical issues identified in the investigation",
                confidence=0.4,
                evidence=[],
                category=CATEGORY_BY_TYPE.get(plan.detected_type, "application"),
            )

        contributing_factors = [
            ContributingFactor(
                description=e.summary, confidence=0.6, evidence=[e.id], impact="medium"
            )
            for e in important
        ]

        timeline = [
            TimelineEntry(timestamp=e.collected_at, event=e.summary, evidence=e.id)
            for e in sorted(evidence, key=lambda e: e.collected_at)
        ]

        if critical:
            severity = "critical" if plan.problem.severity == "critical" else "high"
        else:
            severity = "low"

        return RootCauseAnalysis(
            primary_cause=primary_cause,
            contributing_factors=contributing_factors,
            timeline=timeline,
            affected_components=list(plan.problem.affected_services),
            business_impact=BusinessImpact(severity=severity),
        )

    def recommendations(
        self, evidence: list[InvestigationEvidence]
    ) -> InvestigationRecommendations:
        def collect(significance: Optional[str], attr: str) -> list[tuple[str, str]]:
            items = []
            for e in evidence:
                if significance and e.significance != significance:
                    continue
                if e.analysis_result is None:
                    continue
                items.extend((text, e.summary) for text in getattr(e.analysis_result, attr))
            return _unique(items)

        return InvestigationRecommendations(
            immediate=[
                ImmediateAction(action=text, priority="high", description=source)
                for text, source in collect("critical", "recommendations")
            ],
            short_term=[
                ShortTermAction(action=text, priority="medium", description=source)
                for text, source in collect("important", "recommendations")
            ],
            long_term=[
                LongTermAction(
                    action=text,
                    category="monitoring",
                    description=f"Follow-up suggested by: {source}",
                )
                for text, source in collect(None, "follow_up_queries")
            ],
            prevention=[],
        )

    def summary(
        self,
        plan: InvestigationPlan,
        context: InvestigationContext,
        root_cause: RootCauseAnalysis,
    ) -> str:
        return (
            f"Investigation completed for: {plan.problem.description}. "
            f"Executed {context.progress.completed_queries} queries across "
            f"{context.progress.completed_phases} phases. "
            f"Primary cause: {root_cause.primary_cause.description}"
        )

    def synthesize(
        self, investigation_id: str, plan: InvestigationPlan, context: InvestigationContext
    ) -> InvestigationResult:
        """Build the terminal result; ``context`` must already be marked completed"""
        completed_at = utcnow()
        root_cause = self.root_cause_analysis(plan, context.evidence)

        result = InvestigationResult(
            id=investigation_id,
            context=context,
            plan=plan,
            evidence=list(context.evidence),
            root_cause_analysis=root_cause,
            recommendations=self.recommendations(context.evidence),
            summary=self.summary(plan, context, root_cause),
            completed_at=completed_at,
            total_execution_time=max(
                0, int((completed_at - context.started_at).total_seconds())
            ),
        )
        logger.info(
            f"Synthesized result for {investigation_id}: "
            f"{root_cause.primary_cause.description}"
        )
        return result
