"""
LLM client for routing requests to different language models

Supports both local and cloud-based LLMs with unified interface.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from .config import InvengineConfig, LLMRouterConfig
from .observability.metrics import get_metrics
from .observability.tracer import add_event, set_attribute, trace_async

logger = logging.getLogger(__name__)


class LLMResponse(BaseModel):
    """Standardized LLM response format"""

    content: str
    model: str
    tokens_used: Optional[int] = None
    finish_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients"""

    def __init__(self, config: LLMRouterConfig):
        self.config = config

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        template_type: str = "default",
        **kwargs,
    ) -> LLMResponse:
        """Generate response from LLM"""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if LLM is available"""


class BaseOpenAICompatibleClient(BaseLLMClient):
    """Base class for clients speaking the OpenAI chat completions API"""

    provider_name = "openai"

    def __init__(self, config: LLMRouterConfig):
        super().__init__(config)
        self._client = None

    @abstractmethod
    def _create_client(self):
        """Build the underlying AsyncOpenAI client"""

    def _get_client(self):
        if self._client is None:
            self._client = self._create_client()
        return self._client

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        template_type: str = "default",
        **kwargs,
    ) -> LLMResponse:
        """Generate response using OpenAI-compatible API"""

        @trace_async(f"llm.{self.provider_name}.generate")
        async def _generate() -> LLMResponse:
            metrics = get_metrics()
            try:
                client = self._get_client()

                set_attribute("llm.provider", self.provider_name)
                set_attribute("llm.model", self.config.model)
                set_attribute("llm.template_type", template_type)
                set_attribute("prompt.length", len(prompt))

                messages = []
                if system_prompt:
                    messages.append({"role": "system", "content": system_prompt})
                messages.append({"role": "user", "content": prompt})

                generation_params = {
                    "model": self.config.model,
                    "messages": messages,
                    "temperature": self.config.temperature,
                    "max_tokens": self.config.max_tokens,
                    **kwargs,
                }

                response = await client.chat.completions.create(**generation_params)

                choice = response.choices[0]
                usage = response.usage
                result = LLMResponse(
                    content=choice.message.content or "",
                    model=response.model,
                    tokens_used=usage.total_tokens if usage else None,
                    finish_reason=choice.finish_reason,
                    metadata={
                        "prompt_tokens": usage.prompt_tokens if usage else None,
                        "completion_tokens": usage.completion_tokens if usage else None,
                        **self._extra_metadata(),
                    },
                )

                if metrics:
                    metrics.record_llm_request(
                        self.provider_name, self.config.model, template_type
                    )
                    if usage:
                        metrics.record_llm_tokens(
                            self.provider_name,
                            self.config.model,
                            usage.prompt_tokens or 0,
                            usage.completion_tokens or 0,
                        )

                set_attribute("response.tokens_used", result.tokens_used)
                add_event("llm_generation_complete")
                return result

            except Exception as e:
                logger.error(f"{self.provider_name} generation failed: {e}")
                if metrics:
                    metrics.record_llm_error(
                        self.provider_name, self.config.model, type(e).__name__
                    )
                add_event("llm_generation_error", {"error": str(e)})
                raise

        return await _generate()

    def _extra_metadata(self) -> dict[str, Any]:
        return {}

    async def health_check(self) -> bool:
        """Check LLM service availability"""
        try:
            client = self._get_client()
            await client.chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": "test"}],
                max_tokens=1,
            )
            return True
        except Exception as e:
            logger.error(f"{self.provider_name} health check failed: {e}")
            return False


class OpenAIClient(BaseOpenAICompatibleClient):
    """OpenAI API client"""

    provider_name = "openai"

    def _create_client(self):
        from openai import AsyncOpenAI

        return AsyncOpenAI(api_key=self.config.api_key, timeout=self.config.timeout)


class LocalLLMClient(BaseOpenAICompatibleClient):
    """
    Local LLM client for OpenAI-compatible inference services

    Works with Ollama (http://localhost:11434/v1), LMStudio
    (http://localhost:1234/v1), vLLM and similar servers.
    """

    provider_name = "local"

    def _create_client(self):
        from openai import AsyncOpenAI

        if not self.config.base_url:
            raise ValueError(
                "base_url is required for local LLM provider. "
                "Examples: http://localhost:11434/v1 (Ollama), "
                "http://localhost:1234/v1 (LMStudio)"
            )

        return AsyncOpenAI(
            api_key=self.config.api_key or "not-needed",
            base_url=self.config.base_url,
            timeout=self.config.timeout,
        )

    def _extra_metadata(self) -> dict[str, Any]:
        return {"base_url": self.config.base_url}


DEFAULT_MOCK_RESPONSES: dict[str, Any] = {
    "classification": {
        "type": "performance",
        "confidence": 0.85,
        "reasoning": "Mock classification for testing",
    },
    "planning": {
        "phases": [
            {
                "name": "Mock Phase",
                "description": "Mock investigation phase",
                "priority": "high",
                "queries": [
                    {
                        "purpose": "Mock request overview",
                        "query": "requests | take 10",
                        "expectedOutcome": "Mock outcome",
                        "confidence": 0.8,
                        "required": True,
                    }
                ],
            }
        ],
        "estimatedTotalTime": 60,
        "confidence": 0.8,
        "reasoning": "Mock plan for testing",
    },
    "analysis": {
        "aiInsights": "Mock analysis of query result",
        "insights": ["Mock insight"],
        "recommendations": [],
        "followUpQueries": [],
    },
    "default": {"content": "Mock LLM response for testing purposes"},
}


class MockLLMClient(BaseLLMClient):
    """Mock LLM client for testing and development"""

    def __init__(self, config: LLMRouterConfig):
        super().__init__(config)
        self.mock_responses = self._load_mock_responses()

    def _load_mock_responses(self) -> dict[str, Any]:
        """Load mock responses from external YAML file"""
        if self.config.mock_responses_path:
            path = Path(self.config.mock_responses_path)
        else:
            path = Path(__file__).parent / "prompts" / "mock_responses.yaml"

        try:
            with open(path, encoding="utf-8") as f:
                return yaml.safe_load(f) or DEFAULT_MOCK_RESPONSES
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load mock responses from {path}: {e}")
            return DEFAULT_MOCK_RESPONSES

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        template_type: str = "default",
        **kwargs,
    ) -> LLMResponse:
        """Generate mock response"""
        await asyncio.sleep(0.01)  # Simulate network delay

        response_data = self.mock_responses.get(
            template_type, self.mock_responses.get("default", {})
        )

        if template_type == "default" or "content" in response_data:
            content = response_data.get("content", f"Mock response for {template_type}")
        else:
            content = json.dumps(response_data, indent=2)

        return LLMResponse(
            content=content,
            model=f"mock-{self.config.model}",
            tokens_used=len(content.split()),
            finish_reason="stop",
            metadata={"mock": True, "template_type": template_type},
        )

    async def health_check(self) -> bool:
        """Mock health check always returns True"""
        return True


class LLMRouter:
    """
    Routes LLM requests to appropriate clients

    Handles client instantiation and health checks per named router.
    """

    def __init__(self, config: InvengineConfig):
        self.config = config
        self._clients: dict[str, BaseLLMClient] = {}

    def _create_client(
        self, router_name: str, router_config: LLMRouterConfig
    ) -> BaseLLMClient:
        """Create LLM client based on provider"""
        provider = router_config.provider.lower()

        if provider == "openai":
            if router_config.api_key and router_config.api_key.startswith(
                "sk-placeholder"
            ):
                logger.info(
                    f"Using mock client for placeholder API key in router {router_name}"
                )
                return MockLLMClient(router_config)
            return OpenAIClient(router_config)
        if provider == "local":
            return LocalLLMClient(router_config)
        if provider == "mock":
            return MockLLMClient(router_config)
        logger.warning(f"Unknown LLM provider '{provider}', using mock client")
        return MockLLMClient(router_config)

    def get_client(self, router_name: Optional[str] = None) -> BaseLLMClient:
        """Get LLM client by router name"""
        router_name = router_name or self.config.llm.default

        if router_name not in self._clients:
            router_config = self.config.get_llm_router_config(router_name)
            self._clients[router_name] = self._create_client(router_name, router_config)

        return self._clients[router_name]

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        router_name: Optional[str] = None,
        template_type: str = "default",
        **kwargs,
    ) -> LLMResponse:
        """Generate response using specified router"""
        client = self.get_client(router_name)

        try:
            return await client.generate(
                prompt, system_prompt, template_type=template_type, **kwargs
            )
        except Exception as e:
            logger.error(f"LLM generation failed with router {router_name}: {e}")
            raise

    async def health_check(self, router_name: Optional[str] = None) -> bool:
        """Check health of specified router"""
        try:
            return await self.get_client(router_name).health_check()
        except Exception as e:
            logger.error(f"Health check failed for router {router_name}: {e}")
            return False
