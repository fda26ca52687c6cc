"""Custom exceptions for the PropMetrics reporting engine."""
from typing import Optional


class PropMetricsError(Exception):
    """Base exception for all PropMetrics errors."""


class ConfigError(PropMetricsError):
    """Raised when the source registry or required settings are missing/invalid."""


class ValidationError(PropMetricsError):
    """Raised for invalid date ranges or unsupported period granularity."""


class QueryError(PropMetricsError):
    """Raised when a metric query fails.

    scope is "source" when only one source's query failed, or "dimension"
    when the whole metric dimension could not be fetched.
    """

    def __init__(
        self,
        message: str,
        dimension: Optional[str] = None,
        source_name: Optional[str] = None,
        scope: str = "source",
    ):
        self.dimension = dimension
        self.source_name = source_name
        self.scope = scope
        super().__init__(message)


class DimensionQueryError(QueryError):
    """Raised by an executor for failures shared by every source (auth, transport)."""

    def __init__(
        self,
        message: str,
        dimension: Optional[str] = None,
        source_name: Optional[str] = None,
    ):
        super().__init__(
            message, dimension=dimension, source_name=source_name, scope="dimension"
        )


class SinkError(PropMetricsError):
    """Raised when writing a formatted table to the output sink fails."""

    def __init__(self, table_name: str, message: str):
        self.table_name = table_name
        super().__init__(f"Sink failure for table={table_name}: {message}")
