"""
Telemetry data source interface and registry

A data source executes one KQL query against a telemetry backend and
returns tabular results.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..config import InvengineConfig
from ..models import QueryResult

logger = logging.getLogger(__name__)


class DataSourceProvider(ABC):
    """
    Abstract base class for telemetry query executors

    Implementations raise DataSourceError when the backend rejects or fails
    a query; the phase executor turns that into a query failure.
    """

    name: str = "base"

    def __init__(self, config: InvengineConfig):
        self.config = config
        self.datasource_config = config.datasource

    @abstractmethod
    async def execute_query(self, query: str) -> QueryResult:
        """Run a query and return its tables"""

    @abstractmethod
    async def validate_connection(self) -> tuple[bool, Optional[str]]:
        """Return (is_valid, error message)"""

    def get_metadata(self) -> dict[str, Any]:
        return {"name": self.name, "capabilities": ["kql-queries"]}

    async def close(self) -> None:
        """Release any held connections"""


class DataSourceRegistry:
    """
    Registry for available data source implementations

    Resolves the configured provider name to a concrete class.
    """

    def __init__(self):
        self._providers: dict[str, type[DataSourceProvider]] = {}

    def register(self, provider_class: type[DataSourceProvider]) -> None:
        name = getattr(provider_class, "name", None)
        if not name or name == "base":
            raise ValueError(
                f"Data source class {provider_class.__name__} must have a 'name' attribute"
            )
        self._providers[name] = provider_class
        logger.debug(f"Registered data source: {name}")

    def get_available_providers(self) -> list[str]:
        return list(self._providers.keys())

    def create(self, config: InvengineConfig) -> DataSourceProvider:
        """Create the data source named in ``config.datasource.provider``"""
        name = config.datasource.provider
        provider_class = self._providers.get(name)
        if provider_class is None:
            raise ValueError(
                f"Unknown data source provider '{name}'. "
                f"Available: {', '.join(self.get_available_providers())}"
            )
        return provider_class(config)


registry = DataSourceRegistry()


def register_datasource(provider_class: type) -> type:
    """Decorator for registering data source classes"""
    registry.register(provider_class)
    return provider_class
