"""
Configuration management for invengine

Provides pydantic-based configuration with environment variable support
and YAML file loading capabilities.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .observability.config import TelemetryConfig

PACKAGE_DIR = Path(__file__).parent


class LLMRouterConfig(BaseModel):
    """Single LLM router configuration"""

    provider: str = "openai"  # "openai", "local", "mock"
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = "sk-placeholder-test-key"
    base_url: Optional[str] = None
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, gt=0)
    timeout: float = Field(default=30.0, gt=0)
    mock_responses_path: Optional[str] = None


class LLMConfig(BaseModel):
    """LLM configuration"""

    default: str = "openai_default"
    routers: dict[str, LLMRouterConfig] = Field(
        default_factory=lambda: {"openai_default": LLMRouterConfig()}
    )


class DataSourceConfig(BaseModel):
    """Telemetry backend configuration"""

    provider: str = "mock"  # "mock", "application_insights"
    app_id: Optional[str] = None
    api_key: Optional[str] = None
    endpoint: str = "https://api.applicationinsights.io/v1"
    timeout: float = Field(default=30.0, gt=0)
    mock_results_path: Optional[str] = None


class InvestigationConfig(BaseModel):
    """Investigation engine defaults and policies"""

    critical_row_threshold: int = Field(default=1000, ge=0)
    important_row_threshold: int = Field(default=100, ge=0)
    default_estimated_time: int = Field(default=300, gt=0)
    long_plan_threshold: int = Field(default=1800, gt=0)
    ai_plan_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    default_plan_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    default_language: str = "en"


class PromptsConfig(BaseModel):
    """Prompt template settings"""

    prompts_dir: str = str(PACKAGE_DIR / "prompts")
    classification_template: str = "classification:v1"
    planning_template: str = "planning:v1"
    analysis_template: str = "analysis:v1"


class InvengineConfig(BaseSettings):
    """Main invengine configuration"""

    model_config = SettingsConfigDict(
        env_prefix="INVENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    datasource: DataSourceConfig = Field(default_factory=DataSourceConfig)
    investigation: InvestigationConfig = Field(default_factory=InvestigationConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)

    log_level: str = "INFO"

    @classmethod
    def load_from_file(cls, config_path: str = "invengine.yml") -> "InvengineConfig":
        """Load configuration from YAML file with environment variable override"""
        import yaml

        config_file = Path(config_path)
        config_data = {}

        if config_file.exists():
            with open(config_file, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def get_llm_router_config(
        self, router_name: Optional[str] = None
    ) -> LLMRouterConfig:
        """Get LLM router configuration"""
        router_name = router_name or self.llm.default
        if router_name not in self.llm.routers:
            raise ValueError(f"LLM router '{router_name}' not found in configuration")
        return self.llm.routers[router_name]


# Global configuration instance
_config: Optional[InvengineConfig] = None


def get_config() -> InvengineConfig:
    """Get the global configuration instance"""
    global _config
    if _config is None:
        _config = InvengineConfig.load_from_file()
    return _config


def set_config(config: InvengineConfig) -> None:
    """Set the global configuration instance"""
    global _config
    _config = config
