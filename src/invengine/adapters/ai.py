"""
AI reasoning adapter

Wraps the LLM router behind the narrow interface the investigation engine
needs: free-form generation per template type, and structured analysis of
one query result.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from ..config import InvengineConfig, get_config
from ..exceptions import AIAdapterError
from ..llm_client import LLMRouter
from ..models import (
    AnalysisRequest,
    AnalysisResult,
    FullAnalysis,
    InsightsAnalysis,
    PatternsAnalysis,
    StatisticalSummary,
    UnrecognizedAnalysis,
)
from ..observability.tracer import add_event, set_attribute, trace_async
from ..prompts import PromptManager, extract_json_from_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert in Application Insights, KQL and production incident "
    "investigation. Answer with valid JSON only."
)


class AIProvider(ABC):
    """Interface to the AI reasoning backend"""

    @abstractmethod
    async def generate_response(self, prompt: str, template_type: str = "default") -> str:
        """Return the raw model text for a rendered prompt"""

    @abstractmethod
    async def analyze_query_result(self, request: AnalysisRequest) -> AnalysisResult:
        """Interpret one query result"""


@dataclass
class AIOutcome:
    """Explicit success/failure of a structured AI request"""

    ok: bool
    payload: dict[str, Any] = field(default_factory=dict)
    raw: str = ""
    error: Optional[str] = None

    @classmethod
    def success(cls, payload: dict[str, Any], raw: str) -> "AIOutcome":
        return cls(ok=True, payload=payload, raw=raw)

    @classmethod
    def failure(cls, error: str, raw: str = "") -> "AIOutcome":
        return cls(ok=False, raw=raw, error=error)


async def request_json(provider: AIProvider, prompt: str, template_type: str) -> AIOutcome:
    """
    Ask the provider for a JSON object

    Adapter errors and unparsable output become a failed outcome; callers
    decide on their own fallback.
    """
    try:
        raw = await provider.generate_response(prompt, template_type)
    except Exception as e:
        logger.warning(f"AI request for {template_type} failed: {e}")
        return AIOutcome.failure(str(e))

    payload = extract_json_from_text(raw)
    if payload is None:
        logger.warning(f"AI response for {template_type} contained no JSON object")
        return AIOutcome.failure("No JSON object in AI response", raw)

    return AIOutcome.success(payload, raw)


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key, accepting camelCase and snake_case spellings"""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value if item is not None]
    raise ValueError(f"Expected a list of strings, got {type(value).__name__}")


def build_analysis(payload: dict[str, Any], request: AnalysisRequest) -> AnalysisResult:
    """Map a model payload onto the analysis variant requested"""
    common = {
        "ai_insights": str(_pick(payload, "aiInsights", "ai_insights", default="")),
        "recommendations": _string_list(payload.get("recommendations")),
        "follow_up_queries": _string_list(
            _pick(payload, "followUpQueries", "follow_up_queries")
        ),
    }

    if request.analysis_type == "patterns":
        source = payload.get("patterns") if isinstance(payload.get("patterns"), dict) else payload
        return PatternsAnalysis(
            anomalies=_string_list(source.get("anomalies")),
            trends=_string_list(source.get("trends")),
            correlations=_string_list(source.get("correlations")),
            **common,
        )

    if request.analysis_type == "full":
        columns = [
            column.name for table in request.result.tables for column in table.columns
        ]
        return FullAnalysis(
            statistical=StatisticalSummary(
                total_rows=request.result.total_rows, columns=columns
            ),
            patterns=_string_list(payload.get("patterns")),
            insights=_string_list(payload.get("insights")),
            **common,
        )

    return InsightsAnalysis(insights=_string_list(payload.get("insights")), **common)


class LLMReasoningAdapter(AIProvider):
    """AIProvider backed by the LLM router and versioned prompt templates"""

    def __init__(
        self,
        router: Optional[LLMRouter] = None,
        prompt_manager: Optional[PromptManager] = None,
        config: Optional[InvengineConfig] = None,
        router_name: Optional[str] = None,
    ):
        self.config = config or get_config()
        self.router = router or LLMRouter(self.config)
        self.prompt_manager = prompt_manager or PromptManager(
            self.config.prompts.prompts_dir
        )
        self.router_name = router_name

    async def generate_response(self, prompt: str, template_type: str = "default") -> str:
        try:
            response = await self.router.generate(
                prompt,
                system_prompt=SYSTEM_PROMPT,
                router_name=self.router_name,
                template_type=template_type,
            )
        except Exception as e:
            logger.error(f"AI generation failed for {template_type}: {e}")
            raise AIAdapterError(
                f"AI generation failed: {e}", {"template_type": template_type}
            ) from e
        return response.content

    @trace_async("ai.analyze_query_result")
    async def analyze_query_result(self, request: AnalysisRequest) -> AnalysisResult:
        template_key = self.config.prompts.analysis_template
        meta = self.prompt_manager.load_template_meta(template_key)

        prompt = self.prompt_manager.render_template(
            template_key,
            {
                "original_query": request.original_query,
                "total_rows": request.result.total_rows,
                "tables": request.result.tables,
                "sample_size": meta.get("sample_size", 20),
                "analysis_type": request.analysis_type,
            },
        )
        set_attribute("analysis.type", request.analysis_type)
        set_attribute("analysis.rows", request.result.total_rows)

        raw = await self.generate_response(prompt, "analysis")

        payload = extract_json_from_text(raw)
        if payload is None:
            add_event("analysis_unrecognized")
            return UnrecognizedAnalysis(raw=raw)

        try:
            return build_analysis(payload, request)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Analysis payload did not match expected shape: {e}")
            add_event("analysis_unrecognized", {"error": str(e)})
            return UnrecognizedAnalysis(raw=raw)
