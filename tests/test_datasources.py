"""
Tests for telemetry data sources and the data source registry
"""

import json
from unittest.mock import patch

import httpx
import pytest

from invengine.datasources import (
    ApplicationInsightsDataSource,
    DataSourceProvider,
    DataSourceRegistry,
    MockDataSource,
    create_datasource,
    registry,
)
from invengine.exceptions import DataSourceError


class TestDataSourceRegistry:
    """Test provider registration and lookup"""

    def test_builtin_providers_registered(self):
        providers = registry.get_available_providers()

        assert "mock" in providers
        assert "application_insights" in providers

    def test_create_from_config(self, test_config):
        datasource = create_datasource(test_config)

        assert isinstance(datasource, MockDataSource)

    def test_unknown_provider(self, test_config):
        test_config.datasource.provider = "splunk"

        with pytest.raises(ValueError, match="Unknown data source provider 'splunk'"):
            create_datasource(test_config)

    def test_register_requires_name(self):
        class Nameless(DataSourceProvider):
            async def execute_query(self, query):
                raise NotImplementedError

            async def validate_connection(self):
                return True, None

        with pytest.raises(ValueError):
            DataSourceRegistry().register(Nameless)


class TestMockDataSource:
    """Test the canned-result data source"""

    @pytest.mark.asyncio
    async def test_bundled_results(self, test_config):
        datasource = MockDataSource(test_config)

        result = await datasource.execute_query(
            "requests | summarize percentiles(duration, 95) by name"
        )

        assert result.total_rows == 3
        assert result.tables[0].columns[0].name == "name"
        assert datasource.executed_queries == [
            "requests | summarize percentiles(duration, 95) by name"
        ]

    @pytest.mark.asyncio
    async def test_default_result(self, test_config):
        datasource = MockDataSource(test_config)

        result = await datasource.execute_query("traces | take 5")

        assert result.total_rows == 1

    @pytest.mark.asyncio
    async def test_custom_results_file(self, test_config, tmp_path):
        results_file = tmp_path / "results.yaml"
        results_file.write_text(
            "results:\n"
            "  - match: \"BROKEN\"\n"
            "    fail: true\n"
            "    error: \"workspace offline\"\n"
            "  - match: \"requests\"\n"
            "    result:\n"
            "      tables:\n"
            "        - name: PrimaryResult\n"
            "          columns: [{name: count_, type: long}]\n"
            "          rows: [[1], [2]]\n"
        )
        test_config.datasource.mock_results_path = str(results_file)
        datasource = MockDataSource(test_config)

        result = await datasource.execute_query("REQUESTS | count")
        assert result.total_rows == 2

        with pytest.raises(DataSourceError, match="workspace offline"):
            await datasource.execute_query("broken query")

    @pytest.mark.asyncio
    async def test_missing_results_file(self, test_config, tmp_path):
        test_config.datasource.mock_results_path = str(tmp_path / "missing.yaml")
        datasource = MockDataSource(test_config)

        result = await datasource.execute_query("requests")

        assert result.tables == []

    @pytest.mark.asyncio
    async def test_validate_connection(self, test_config):
        assert await MockDataSource(test_config).validate_connection() == (True, None)


@pytest.fixture
def insights_config(test_config):
    test_config.datasource.provider = "application_insights"
    test_config.datasource.app_id = "app-123"
    test_config.datasource.api_key = "secret"
    return test_config


def insights_with(config, handler):
    datasource = ApplicationInsightsDataSource(config)
    transport = httpx.MockTransport(handler)
    return datasource, patch.object(
        datasource,
        "_get_client",
        side_effect=lambda: httpx.AsyncClient(transport=transport),
    )


class TestApplicationInsightsDataSource:
    """Test the Application Insights REST client"""

    def test_requires_app_id(self, test_config):
        with pytest.raises(ValueError, match="app_id"):
            ApplicationInsightsDataSource(test_config)

    def test_base_url(self, insights_config):
        datasource = ApplicationInsightsDataSource(insights_config)

        assert datasource.base_url == "https://api.applicationinsights.io/v1/apps/app-123"

    @pytest.mark.asyncio
    async def test_execute_query(self, insights_config):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["api_key"] = request.headers.get("x-api-key")
            captured["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "tables": [
                        {
                            "name": "PrimaryResult",
                            "columns": [{"name": "count_", "type": "long"}],
                            "rows": [[42]],
                        },
                        {"name": "ExtraTable", "columns": [], "rows": [[1], [2]]},
                    ]
                },
            )

        datasource, client_patch = insights_with(insights_config, handler)
        with client_patch:
            result = await datasource.execute_query("requests | count")

        assert captured["url"] == "https://api.applicationinsights.io/v1/apps/app-123/query"
        assert captured["api_key"] == "secret"
        assert captured["body"] == {"query": "requests | count"}
        assert len(result.tables) == 1
        assert result.tables[0].rows == [[42]]

    @pytest.mark.asyncio
    async def test_empty_tables(self, insights_config):
        datasource, client_patch = insights_with(
            insights_config, lambda request: httpx.Response(200, json={"tables": []})
        )
        with client_patch:
            result = await datasource.execute_query("requests | take 0")

        assert result.tables == []

    @pytest.mark.asyncio
    async def test_api_error(self, insights_config):
        datasource, client_patch = insights_with(
            insights_config,
            lambda request: httpx.Response(
                400, json={"error": {"message": "Syntax error in query"}}
            ),
        )
        with client_patch:
            with pytest.raises(DataSourceError, match="Syntax error in query") as exc_info:
                await datasource.execute_query("requests |")

        assert exc_info.value.details["status_code"] == 400

    @pytest.mark.asyncio
    async def test_transport_error(self, insights_config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        datasource, client_patch = insights_with(insights_config, handler)
        with client_patch:
            with pytest.raises(DataSourceError, match="Failed to execute query"):
                await datasource.execute_query("requests")

    @pytest.mark.asyncio
    async def test_validate_connection(self, insights_config):
        datasource, client_patch = insights_with(
            insights_config, lambda request: httpx.Response(403, text="Forbidden")
        )
        with client_patch:
            ok, error = await datasource.validate_connection()

        assert ok is False
        assert "Failed to connect to Application Insights" in error
