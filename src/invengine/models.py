"""
Core data models for invengine

Defines the investigation problem, plan, evidence, progress and result
structures using Pydantic for validation and serialization.
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

InvestigationType = Literal["performance", "availability", "data-quality", "dependencies"]
InvestigationStatus = Literal["created", "in-progress", "completed", "failed", "paused"]
Significance = Literal["critical", "important", "informational"]
Severity = Literal["low", "medium", "high", "critical"]
Priority = Literal["high", "medium", "low"]
AnalysisType = Literal["patterns", "insights", "full"]
Provenance = Literal["ai", "default"]
ExportFormat = Literal["json", "markdown", "html"]

INVESTIGATION_TYPES: tuple[str, ...] = (
    "performance",
    "availability",
    "data-quality",
    "dependencies",
)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Telemetry query results


class QueryColumn(BaseModel):
    name: str
    type: str = "string"


class QueryTable(BaseModel):
    name: str = "PrimaryResult"
    columns: list[QueryColumn] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)


class QueryResult(BaseModel):
    """Tabular result returned by the telemetry backend"""

    tables: list[QueryTable] = Field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return sum(len(table.rows) for table in self.tables)


# Problem and plan


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: Optional[datetime] = None
    end: Optional[datetime] = None


class InvestigationProblem(BaseModel):
    """Free-text problem description plus optional hints"""

    model_config = ConfigDict(frozen=True)

    description: str = Field(min_length=1)
    type: Optional[InvestigationType] = None
    severity: Optional[Severity] = None
    time_range: Optional[TimeRange] = None
    affected_services: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("description")
    @classmethod
    def _description_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Problem description must not be blank")
        return value


class InvestigationQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    purpose: str
    query: str
    expected_outcome: str = ""
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    required: bool = False


class InvestigationPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    queries: list[InvestigationQuery] = Field(default_factory=list)
    priority: Priority = "medium"
    estimated_time: Optional[int] = None
    dependencies: list[str] = Field(default_factory=list)


class InvestigationPlan(BaseModel):
    """Ordered phases of queries for one problem; immutable once created"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    problem: InvestigationProblem
    detected_type: InvestigationType
    phases: list[InvestigationPhase]
    estimated_total_time: int = 300
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    reasoning: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    source: Provenance = "ai"

    @property
    def total_queries(self) -> int:
        return sum(len(phase.queries) for phase in self.phases)


class ClassificationResult(BaseModel):
    type: InvestigationType
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    source: Provenance = "ai"


class PlanValidation(BaseModel):
    is_valid: bool
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


# Query analysis payloads


class _AnalysisBase(BaseModel):
    ai_insights: str = ""
    recommendations: list[str] = Field(default_factory=list)
    follow_up_queries: list[str] = Field(default_factory=list)

    @property
    def headline(self) -> str:
        return self.ai_insights


class PatternsAnalysis(_AnalysisBase):
    kind: Literal["patterns"] = "patterns"
    anomalies: list[str] = Field(default_factory=list)
    trends: list[str] = Field(default_factory=list)
    correlations: list[str] = Field(default_factory=list)


class InsightsAnalysis(_AnalysisBase):
    kind: Literal["insights"] = "insights"
    insights: list[str] = Field(default_factory=list)


class StatisticalSummary(BaseModel):
    total_rows: int = 0
    columns: list[str] = Field(default_factory=list)


class FullAnalysis(_AnalysisBase):
    kind: Literal["full"] = "full"
    statistical: Optional[StatisticalSummary] = None
    patterns: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)


class UnrecognizedAnalysis(BaseModel):
    """Adapter output that did not match any known analysis shape"""

    kind: Literal["unrecognized"] = "unrecognized"
    raw: str = ""

    @property
    def headline(self) -> str:
        return ""

    @property
    def recommendations(self) -> list[str]:
        return []

    @property
    def follow_up_queries(self) -> list[str]:
        return []


AnalysisResult = Annotated[
    Union[PatternsAnalysis, InsightsAnalysis, FullAnalysis, UnrecognizedAnalysis],
    Field(discriminator="kind"),
]


class AnalysisRequest(BaseModel):
    result: QueryResult
    original_query: str
    analysis_type: AnalysisType = "insights"


# Execution state


class InvestigationEvidence(BaseModel):
    id: str = Field(default_factory=new_id)
    phase_id: str
    query_id: str
    result: QueryResult
    analysis_result: Optional[AnalysisResult] = None
    significance: Significance = "informational"
    summary: str
    collected_at: datetime = Field(default_factory=utcnow)


class InvestigationProgress(BaseModel):
    total_phases: int = Field(ge=0)
    completed_phases: int = Field(default=0, ge=0)
    total_queries: int = Field(ge=0)
    completed_queries: int = Field(default=0, ge=0)
    failed_queries: int = Field(default=0, ge=0)
    skipped_queries: int = Field(default=0, ge=0)
    current_status: InvestigationStatus = "created"
    completion_percentage: float = 0.0


class InvestigationContext(BaseModel):
    """Live state of one investigation, mutated only by the controller"""

    plan_id: str
    session_id: str
    current_phase_id: Optional[str] = None
    current_query_id: Optional[str] = None
    evidence: list[InvestigationEvidence] = Field(default_factory=list)
    failed_query_ids: list[str] = Field(default_factory=list)
    # Queries left unexecuted when a required query aborted their phase
    skipped_query_ids: list[str] = Field(default_factory=list)
    progress: InvestigationProgress
    started_at: datetime = Field(default_factory=utcnow)
    last_updated_at: datetime = Field(default_factory=utcnow)
    deadline: Optional[datetime] = None


# Synthesis


class PrimaryCause(BaseModel):
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: list[str] = Field(default_factory=list)
    category: Literal[
        "infrastructure", "application", "dependencies", "data", "configuration"
    ] = "application"


class ContributingFactor(BaseModel):
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    evidence: list[str] = Field(default_factory=list)
    impact: Priority = "medium"


class TimelineEntry(BaseModel):
    timestamp: datetime
    event: str
    evidence: Optional[str] = None


class BusinessImpact(BaseModel):
    severity: Severity = "low"
    affected_users: Optional[int] = None
    downtime: Optional[int] = None  # minutes
    estimated_cost: Optional[str] = None


class RootCauseAnalysis(BaseModel):
    primary_cause: PrimaryCause
    contributing_factors: list[ContributingFactor] = Field(default_factory=list)
    timeline: list[TimelineEntry] = Field(default_factory=list)
    affected_components: list[str] = Field(default_factory=list)
    business_impact: BusinessImpact = Field(default_factory=BusinessImpact)


class ImmediateAction(BaseModel):
    action: str
    priority: Literal["urgent", "high", "medium", "low"] = "high"
    estimated_time: str = ""
    risk: Literal["low", "medium", "high"] = "low"
    description: str = ""


class ShortTermAction(BaseModel):
    action: str
    priority: Priority = "medium"
    estimated_effort: str = ""
    impact: str = ""
    description: str = ""


class LongTermAction(BaseModel):
    action: str
    category: Literal["monitoring", "architecture", "process", "tooling"] = "monitoring"
    description: str = ""
    benefit: str = ""


class PreventionStrategy(BaseModel):
    strategy: str
    description: str = ""
    implementation: str = ""


class InvestigationRecommendations(BaseModel):
    immediate: list[ImmediateAction] = Field(default_factory=list)
    short_term: list[ShortTermAction] = Field(default_factory=list)
    long_term: list[LongTermAction] = Field(default_factory=list)
    prevention: list[PreventionStrategy] = Field(default_factory=list)


class InvestigationResult(BaseModel):
    """Terminal record of a completed investigation"""

    id: str
    context: InvestigationContext
    plan: InvestigationPlan
    evidence: list[InvestigationEvidence]
    root_cause_analysis: RootCauseAnalysis
    recommendations: InvestigationRecommendations
    summary: str
    completed_at: datetime = Field(default_factory=utcnow)
    total_execution_time: int = 0  # seconds


# Controller request/response shapes


class InvestigationOptions(BaseModel):
    language: str = "en"
    interactive: bool = False
    max_execution_time: Optional[float] = Field(default=None, gt=0)  # minutes
    resume_from_id: Optional[str] = None
    skip_confirmation: bool = False


class NextAction(BaseModel):
    type: Literal["wait", "confirm", "input", "complete"]
    message: str
    options: Optional[list[str]] = None


class InvestigationResponse(BaseModel):
    investigation_id: str
    status: InvestigationStatus
    plan: Optional[InvestigationPlan] = None
    progress: Optional[InvestigationProgress] = None
    result: Optional[InvestigationResult] = None
    next_action: Optional[NextAction] = None


class ExportedReport(BaseModel):
    content: str
    filename: str
    mime_type: str
