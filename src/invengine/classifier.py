"""
Problem classification

Maps a free-text problem description onto one of the investigation types.
AI failures never escape: the classifier falls back to a performance
investigation with low confidence.
"""

import logging
import math
from typing import Optional

from .adapters.ai import AIProvider, request_json
from .config import InvengineConfig, get_config
from .exceptions import ValidationFailure
from .models import INVESTIGATION_TYPES, ClassificationResult
from .observability.metrics import get_metrics
from .observability.tracer import set_attribute, trace_async
from .prompts import PromptManager

logger = logging.getLogger(__name__)

FALLBACK_REASONING = "Classification failed, defaulted to performance investigation"


def default_classification() -> ClassificationResult:
    return ClassificationResult(
        type="performance",
        confidence=0.5,
        reasoning=FALLBACK_REASONING,
        source="default",
    )


class ProblemClassifier:
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

    @trace_async("investigation.classify")
    async def classify(self, description: str) -> ClassificationResult:
        if not description or not description.strip():
            raise ValidationFailure("Problem description must not be blank")

        template_key = self.config.prompts.classification_template
        meta = self.prompt_manager.load_template_meta(template_key)
        prompt = self.prompt_manager.render_template(
            template_key,
            {
                "description": description.strip(),
                "categories": meta.get("categories", {t: t for t in INVESTIGATION_TYPES}),
            },
        )

        outcome = await request_json(self.ai_provider, prompt, "classification")
        if not outcome.ok:
            return self._fallback(outcome.error)

        payload = outcome.payload
        investigation_type = str(payload.get("type", "")).strip().lower()
        if investigation_type not in INVESTIGATION_TYPES:
            return self._fallback(f"unknown investigation type '{investigation_type}'")

        try:
            confidence = float(payload.get("confidence", 0.0))
        except (TypeError, ValueError):
            return self._fallback("confidence is not a number")
        if not math.isfinite(confidence):
            return self._fallback(f"confidence is not finite: {confidence}")

        result = ClassificationResult(
            type=investigation_type,
            confidence=min(max(confidence, 0.0), 1.0),
            reasoning=str(payload.get("reasoning", "")),
            source="ai",
        )
        set_attribute("classification.type", result.type)
        set_attribute("classification.confidence", result.confidence)
        logger.info(
            f"Problem classified as: {result.type} (confidence: {result.confidence})"
        )
        return result

    def _fallback(self, reason: Optional[str]) -> ClassificationResult:
        logger.warning(
            f"Problem classification failed, defaulting to performance type: {reason}"
        )
        metrics = get_metrics()
        if metrics:
            metrics.record_ai_fallback("classifier")
        return default_classification()
