"""
Telemetry data sources for invengine
"""

from .application_insights import ApplicationInsightsDataSource
from .base import DataSourceProvider, DataSourceRegistry, register_datasource, registry
from .mock_datasource import MockDataSource


def create_datasource(config) -> DataSourceProvider:
    """Create the data source configured in ``config.datasource.provider``"""
    return registry.create(config)


__all__ = [
    "ApplicationInsightsDataSource",
    "DataSourceProvider",
    "DataSourceRegistry",
    "MockDataSource",
    "create_datasource",
    "register_datasource",
    "registry",
]
