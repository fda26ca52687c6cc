"""Multi-source metric fan-out.

Dimensions run concurrently (fail-fast); sources within a dimension run
sequentially with per-source failure isolation.
"""
import asyncio
import logging
from datetime import date
from typing import Optional, Sequence

from ..config import redact_text
from ..dates import Granularity, parse_granularity
from ..exceptions import DimensionQueryError, QueryError
from ..sources.registry import SourceDescriptor
from ..warehouse.executor import MetricQueryExecutor
from .models import (
    SOURCE_DESCRIPTION,
    SOURCE_NAME,
    DimensionName,
    SourceFailure,
)


logger = logging.getLogger(__name__)


class Orchestrator:
    """Fetch every metric dimension across every enabled source."""

    def __init__(
        self,
        executor: MetricQueryExecutor,
        dimensions: Sequence[DimensionName] = tuple(DimensionName),
        secrets: Optional[list[Optional[str]]] = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            executor: Injected metric query executor
            dimensions: Dimensions to fetch (defaults to all five)
            secrets: Values to redact from logged error text
        """
        self.executor = executor
        self.dimensions = tuple(dimensions)
        self._secrets = secrets or []
        self.source_failures: list[SourceFailure] = []

    async def fetch_all(
        self,
        sources: Sequence[SourceDescriptor],
        start: date,
        end: date,
        granularity: "str | Granularity",
    ) -> dict[str, list[dict]]:
        """Fetch all dimensions concurrently.

        Args:
            sources: Sources to query (disabled ones are skipped)
            start: First day of the reporting window
            end: Last day of the reporting window
            granularity: 'month' or 'quarter'

        Returns:
            Dict of dimension name -> tagged metric rows

        Raises:
            QueryError: If any dimension fails as a whole (scope="dimension")
            ValidationError: On unsupported granularity
        """
        unit = parse_granularity(granularity)
        enabled = [source for source in sources if source.enabled]

        logger.info(
            "Fetching %s dimensions for %s sources from %s to %s (%s)",
            len(self.dimensions),
            len(enabled),
            start.isoformat(),
            end.isoformat(),
            unit.value,
        )

        tasks = [
            asyncio.create_task(
                self._fetch_dimension(dimension, enabled, start, end, unit),
                name=f"fetch-{dimension.value}",
            )
            for dimension in self.dimensions
        ]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # A failed dimension aborts the run; stop the remaining fetches
            # before the caller tears down the session.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        data: dict[str, list[dict]] = {}
        failures: list[SourceFailure] = []
        for dimension, (rows, dimension_failures) in zip(self.dimensions, results):
            data[dimension.value] = rows
            failures.extend(dimension_failures)

        self.source_failures = failures
        if failures:
            logger.warning(
                "Skipped %s source fetch(es): %s",
                len(failures),
                ", ".join(f"{f.dimension}/{f.source_name}" for f in failures),
            )
        return data

    async def _fetch_dimension(
        self,
        dimension: DimensionName,
        sources: Sequence[SourceDescriptor],
        start: date,
        end: date,
        granularity: Granularity,
    ) -> tuple[list[dict], list[SourceFailure]]:
        rows: list[dict] = []
        failures: list[SourceFailure] = []
        last_error: Optional[Exception] = None

        for source in sources:
            logger.info("Processing %s for source: %s", dimension.value, source.name)
            try:
                source_rows = await self.executor.execute(
                    dimension, source, start, end, granularity
                )
            except DimensionQueryError as exc:
                exc.dimension = exc.dimension or dimension.value
                raise
            except Exception as exc:
                message = redact_text(str(exc), self._secrets)
                logger.error(
                    "Error processing source %s for %s: %s",
                    source.name,
                    dimension.value,
                    message,
                )
                failures.append(SourceFailure(dimension.value, source.name, message))
                last_error = exc
                continue

            rows.extend(self._tag_rows(source_rows, source))

        if sources and len(failures) == len(sources):
            raise QueryError(
                f"All {len(sources)} source(s) failed for dimension {dimension.value}",
                dimension=dimension.value,
                scope="dimension",
            ) from last_error

        logger.info("Fetched %s rows for %s", len(rows), dimension.value)
        return rows, failures

    @staticmethod
    def _tag_rows(rows: Sequence[dict], source: SourceDescriptor) -> list[dict]:
        return [
            {
                **row,
                SOURCE_NAME: source.name,
                SOURCE_DESCRIPTION: source.description,
            }
            for row in rows
        ]
