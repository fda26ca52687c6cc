"""Warehouse query layer (BigQuery GA4 export)."""
from .bigquery_client import BigQueryExecutor, decode_rows
from .executor import MetricQueryExecutor
from .queries import build_query

__all__ = ["BigQueryExecutor", "MetricQueryExecutor", "build_query", "decode_rows"]
