"""
Mock telemetry data source

Serves canned query results from a YAML file. Each entry carries a
``match`` substring; the first entry whose substring appears in the query
wins. A ``fail`` entry raises DataSourceError to simulate backend errors.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from ..config import InvengineConfig
from ..exceptions import DataSourceError
from ..models import QueryResult
from .base import DataSourceProvider, register_datasource

logger = logging.getLogger(__name__)

DEFAULT_RESULTS_PATH = Path(__file__).parent / "data" / "mock_results.yaml"


@register_datasource
class MockDataSource(DataSourceProvider):
    """Canned-result data source for development and demos"""

    name = "mock"

    def __init__(self, config: InvengineConfig):
        super().__init__(config)
        self.executed_queries: list[str] = []
        self._results = self._load_results()

    def _load_results(self) -> dict[str, Any]:
        path = (
            Path(self.datasource_config.mock_results_path)
            if self.datasource_config.mock_results_path
            else DEFAULT_RESULTS_PATH
        )
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load mock results from {path}: {e}")
            data = {}

        return {
            "results": data.get("results", []),
            "default": data.get("default", {"tables": []}),
        }

    def _match(self, query: str) -> dict[str, Any]:
        lowered = query.lower()
        for entry in self._results["results"]:
            if entry.get("match", "").lower() in lowered:
                return entry
        return {"result": self._results["default"]}

    async def execute_query(self, query: str) -> QueryResult:
        await asyncio.sleep(0)
        self.executed_queries.append(query)

        entry = self._match(query)
        if entry.get("fail"):
            raise DataSourceError(
                f"Mock query failed: {entry.get('error', 'simulated backend error')}",
                {"query": query},
            )

        result = QueryResult.model_validate(entry.get("result", {"tables": []}))
        logger.debug(f"Mock query returned {result.total_rows} rows")
        return result

    async def validate_connection(self) -> tuple[bool, Optional[str]]:
        return True, None

    def get_metadata(self) -> dict[str, Any]:
        return {"name": "Mock Data Source", "capabilities": ["kql-queries", "canned-results"]}
