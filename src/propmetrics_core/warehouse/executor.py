"""Metric query executor contract."""
from datetime import date
from typing import Protocol

from ..dates import Granularity
from ..dimensions import DimensionName
from ..sources.registry import SourceDescriptor


class MetricQueryExecutor(Protocol):
    """Runs one metric dimension's query against one source.

    Implementations raise QueryError for failures specific to the source
    (e.g., dataset not found) and DimensionQueryError for failures every
    source would hit (auth, exhausted transport retries).
    """

    async def execute(
        self,
        dimension: DimensionName,
        source: SourceDescriptor,
        start: date,
        end: date,
        granularity: Granularity,
    ) -> list[dict]:
        ...
