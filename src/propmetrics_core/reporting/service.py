"""Report service: one batch run from warehouse fetch to sink write."""
import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

import aiohttp
from pydantic import BaseModel, Field

from ..config import RunConfig, redact_text
from ..dates import DateRangeResolver, Granularity
from ..dimensions import DimensionName
from ..engine.change_rates import compute_change_rates
from ..engine.merger import RowSet, merge
from ..engine.models import SourceFailure, SummarySnapshot, UnifiedRecord
from ..engine.orchestrator import Orchestrator
from ..engine.summary import rank, summarize
from ..exceptions import ConfigError, SinkError, ValidationError
from ..sinks.base import Sink
from ..sinks.sheets import SheetsSink
from ..sinks.sqlite import SqliteSink
from ..sources.registry import SourceDescriptor
from ..warehouse.bigquery_client import BigQueryExecutor
from ..warehouse.executor import MetricQueryExecutor
from .formatter import (
    Table,
    format_cvr_table,
    format_demographics_table,
    format_funnel_table,
    format_source_list_table,
    format_summary_table,
    format_traffic_table,
)


logger = logging.getLogger(__name__)


CVR_TABLE = "Property CVR Analysis"
FUNNEL_TABLE = "Booking Funnel Analysis"
TRAFFIC_TABLE = "Traffic Source Analysis"
DEMOGRAPHICS_TABLE = "User Demographics Analysis"
SOURCE_LIST_TABLE = "Property List"
SUMMARY_TABLE = "Property Performance Summary"

# Period selector -> granularity. "all" is the full historical window in months.
PERIOD_SELECTORS = {
    "monthly": Granularity.MONTH,
    "quarterly": Granularity.QUARTER,
    "all": Granularity.MONTH,
}


class SkippedSource(BaseModel):
    dimension: str
    source_name: str
    error: str


class RunResult(BaseModel):
    """Outcome of one report run."""

    success: bool
    message: str
    selector: str
    granularity: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    tables: list[str] = Field(default_factory=list)
    skipped_sources: list[SkippedSource] = Field(default_factory=list)


@dataclass
class ReportData:
    """Derived metric data for one run."""

    dimensions: dict[str, list[dict]]
    cvr_records: dict[tuple[str, str], UnifiedRecord]
    summary: dict[str, SummarySnapshot]


def parse_selector(selector: str) -> Granularity:
    try:
        return PERIOD_SELECTORS[selector]
    except KeyError:
        raise ValidationError(
            f"Unknown period selector {selector!r}; "
            f"available: {', '.join(PERIOD_SELECTORS)}"
        ) from None


def build_report_data(dimensions: dict[str, list[dict]]) -> ReportData:
    """Compute change rates, merge CVR row sets, and summarize sources."""
    basic = dimensions.get(DimensionName.BASIC_CVR.value, [])
    no_ads = dimensions.get(DimensionName.CVR_NO_ADS.value, [])

    cvr_records = merge(
        [
            RowSet(
                basic,
                {
                    "active_users": "active_users",
                    "purchase_users": "purchase_users",
                    "cvr": "cvr",
                },
            ),
            RowSet(no_ads, {"cvr_no_ads": "cvr_no_ads"}),
            RowSet(
                compute_change_rates(basic, "cvr"),
                {"cvr_change_rate": "change_rate_percentage"},
            ),
            RowSet(
                compute_change_rates(no_ads, "cvr_no_ads"),
                {"cvr_no_ads_change_rate": "change_rate_percentage"},
            ),
        ]
    )

    return ReportData(
        dimensions=dimensions,
        cvr_records=cvr_records,
        summary=summarize(basic),
    )


def build_tables(
    data: ReportData, sources: tuple[SourceDescriptor, ...]
) -> list[tuple[str, Table]]:
    """Format every report table in write order."""
    return [
        (CVR_TABLE, format_cvr_table(data.cvr_records)),
        (
            FUNNEL_TABLE,
            format_funnel_table(data.dimensions.get(DimensionName.FUNNEL.value, [])),
        ),
        (
            TRAFFIC_TABLE,
            format_traffic_table(
                data.dimensions.get(DimensionName.TRAFFIC_SOURCES.value, [])
            ),
        ),
        (
            DEMOGRAPHICS_TABLE,
            format_demographics_table(
                data.dimensions.get(DimensionName.DEMOGRAPHICS.value, [])
            ),
        ),
        (SOURCE_LIST_TABLE, format_source_list_table(sources)),
        (SUMMARY_TABLE, format_summary_table(rank(data.summary))),
    ]


async def write_tables(sink: Sink, tables: list[tuple[str, Table]]) -> list[str]:
    """Ensure, clear, then write each table. Stops at the first failure.

    Raises:
        SinkError: Naming the table that failed
    """
    written = []
    for name, table in tables:
        try:
            await sink.ensure_exists(name)
            await sink.clear(name)
            await sink.write(name, table.rows, table.headers)
        except SinkError:
            raise
        except Exception as exc:
            raise SinkError(name, str(exc)) from exc
        written.append(name)
    return written


class ReportService:
    """Runs one multi-property CVR report end to end."""

    def __init__(
        self,
        config: RunConfig,
        executor: MetricQueryExecutor,
        sink: Sink,
        resolver: Optional[DateRangeResolver] = None,
    ) -> None:
        """Initialize report service.

        Args:
            config: Immutable run configuration
            executor: Injected metric query executor
            sink: Injected output sink
            resolver: Date range resolver (defaults to config timezone)
        """
        self.config = config
        self.executor = executor
        self.sink = sink
        self.resolver = resolver or DateRangeResolver(config.tzinfo)

    async def run(self, selector: str = "monthly", months: Optional[int] = None) -> RunResult:
        """Fetch, derive, format, and write all report tables.

        Args:
            selector: 'monthly', 'quarterly', or 'all'
            months: Lookback length in months (defaults to config.default_months)

        Raises:
            ConfigError, ValidationError, QueryError, SinkError
        """
        granularity = parse_selector(selector)
        months = self.config.default_months if months is None else months
        date_range = self.resolver.resolve(granularity, months)

        registry = self.config.registry()
        registry.log_summary()

        logger.info(
            "Starting %s report: %s to %s (%s)",
            selector,
            date_range.start.isoformat(),
            date_range.end.isoformat(),
            granularity.value,
        )

        orchestrator = Orchestrator(self.executor, secrets=self.config.secrets)
        try:
            dimensions = await orchestrator.fetch_all(
                registry.enabled_sources(),
                date_range.start,
                date_range.end,
                granularity,
            )
            data = build_report_data(dimensions)
            written = await write_tables(
                self.sink, build_tables(data, registry.all_sources())
            )
        except Exception as exc:
            logger.error(
                "Report run failed: %s",
                redact_text(str(exc), self.config.secrets),
                exc_info=True,
            )
            raise

        logger.info("Report run completed: %s tables written", len(written))
        return RunResult(
            success=True,
            message=f"{selector.capitalize()} report completed successfully",
            selector=selector,
            granularity=granularity.value,
            start_date=date_range.start,
            end_date=date_range.end,
            tables=written,
            skipped_sources=[
                _skipped(failure) for failure in orchestrator.source_failures
            ],
        )


def _skipped(failure: SourceFailure) -> SkippedSource:
    return SkippedSource(
        dimension=failure.dimension,
        source_name=failure.source_name,
        error=failure.error,
    )


async def run_report(
    config: RunConfig, selector: str = "monthly", months: Optional[int] = None
) -> RunResult:
    """Build the BigQuery executor and configured sink, then run one report."""
    if not config.bigquery_access_token:
        raise ConfigError("BIGQUERY_ACCESS_TOKEN is not set")

    timeout = aiohttp.ClientTimeout(total=600, connect=30)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        executor = BigQueryExecutor(
            project_id=config.project_id,
            access_token=config.bigquery_access_token,
            session=session,
        )

        if config.sink == "sqlite":
            config.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(config.db_path)
            conn.execute("PRAGMA journal_mode=WAL")
            try:
                service = ReportService(config, executor, SqliteSink(conn))
                return await service.run(selector, months)
            finally:
                conn.close()

        sheets_token = config.sheets_access_token or config.bigquery_access_token
        sink = SheetsSink(config.spreadsheet_id, sheets_token, session)
        return await ReportService(config, executor, sink).run(selector, months)
