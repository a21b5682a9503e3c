"""
Application Insights data source

Runs KQL against the Application Insights REST query API
(``POST {endpoint}/apps/{app_id}/query``) using API-key authentication.
"""

import logging
from typing import Any, Optional

import httpx

from ..config import InvengineConfig
from ..exceptions import DataSourceError
from ..models import QueryColumn, QueryResult, QueryTable
from ..observability.tracer import set_attribute, trace_async
from .base import DataSourceProvider, register_datasource

logger = logging.getLogger(__name__)


@register_datasource
class ApplicationInsightsDataSource(DataSourceProvider):
    """Azure Application Insights query executor"""

    name = "application_insights"

    def __init__(self, config: InvengineConfig):
        super().__init__(config)
        if not self.datasource_config.app_id:
            raise ValueError("datasource.app_id is required for Application Insights")

        self.base_url = (
            f"{self.datasource_config.endpoint.rstrip('/')}"
            f"/apps/{self.datasource_config.app_id}"
        )
        self.timeout = self.datasource_config.timeout
        logger.info(f"Initialized {self.__class__.__name__} with base_url={self.base_url}")

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.datasource_config.api_key:
            headers["x-api-key"] = self.datasource_config.api_key
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get("error", {}).get("message", response.text)
        except ValueError:
            return response.text or f"HTTP {response.status_code}"

    @staticmethod
    def _parse_result(payload: dict[str, Any]) -> QueryResult:
        tables = payload.get("tables") or []
        if not tables:
            return QueryResult(tables=[])

        # Only the primary table is used downstream
        table = tables[0]
        return QueryResult(
            tables=[
                QueryTable(
                    name="PrimaryResult",
                    columns=[
                        QueryColumn(name=col["name"], type=col.get("type", "string"))
                        for col in table.get("columns", [])
                    ],
                    rows=table.get("rows") or [],
                )
            ]
        )

    @trace_async("datasource.application_insights.execute_query")
    async def execute_query(self, query: str) -> QueryResult:
        logger.info(f"Executing query on Application Insights: {query[:100]}...")
        set_attribute("query.length", len(query))

        try:
            async with self._get_client() as client:
                response = await client.post(
                    f"{self.base_url}/query",
                    json={"query": query},
                    headers=self._headers(),
                )
                response.raise_for_status()
                result = self._parse_result(response.json())
        except httpx.HTTPStatusError as e:
            message = self._error_message(e.response)
            logger.error(f"Application Insights API error: {message}")
            raise DataSourceError(
                f"Application Insights API error: {message}",
                {"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Query execution failed: {e}")
            raise DataSourceError(f"Failed to execute query: {e}") from e

        set_attribute("query.rows", result.total_rows)
        return result

    async def validate_connection(self) -> tuple[bool, Optional[str]]:
        try:
            async with self._get_client() as client:
                response = await client.get(
                    f"{self.base_url}/metadata", headers=self._headers()
                )
                response.raise_for_status()
            return True, None
        except httpx.HTTPStatusError as e:
            message = self._error_message(e.response)
            logger.error(f"Connection validation failed: {message}")
            return False, f"Failed to connect to Application Insights: {message}"
        except httpx.HTTPError as e:
            logger.error(f"Connection validation failed: {e}")
            return False, f"Failed to connect to Application Insights: {e}"

    def get_metadata(self) -> dict[str, Any]:
        return {
            "name": "Azure Application Insights",
            "type": "application-insights",
            "capabilities": ["kql-queries", "real-time-monitoring"],
        }
