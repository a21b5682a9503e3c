"""Structural checks on investigation plans."""

from typing import Optional

from .config import InvengineConfig, get_config
from .models import InvestigationPlan, PlanValidation


def validate_plan(
    plan: InvestigationPlan, config: Optional[InvengineConfig] = None
) -> PlanValidation:
    """Report structural problems in a plan; never raises"""
    config = config or get_config()
    issues: list[str] = []
    suggestions: list[str] = []

    if not plan.phases:
        issues.append("Investigation plan must have at least one phase")

    for phase in plan.phases:
        if not phase.queries:
            issues.append(f'Phase "{phase.name}" has no queries')
        for query in phase.queries:
            if not query.query.strip():
                issues.append(
                    f'Query "{query.purpose}" in phase "{phase.name}" is empty'
                )

    if plan.estimated_total_time > config.investigation.long_plan_threshold:
        suggestions.append("Investigation time is quite long, consider optimizing queries")

    return PlanValidation(is_valid=not issues, issues=issues, suggestions=suggestions)
