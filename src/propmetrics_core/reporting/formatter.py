"""Header + row projections of metric data, one per report table.

Rates render as "12.34%". Missing counts render as 0; missing rates render
as "" so "not computed" stays distinguishable from "computed as zero".
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..engine.models import SOURCE_DESCRIPTION, SOURCE_NAME, SummarySnapshot, UnifiedRecord
from ..sources.registry import SourceDescriptor


@dataclass
class Table:
    headers: list[str]
    rows: list[list[Any]] = field(default_factory=list)


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"{value * 100:.2f}%"


def count(value: Any) -> Any:
    return 0 if value is None else value


def text(value: Optional[str]) -> str:
    return "" if value is None else value


CVR_HEADERS = [
    "Period",
    "Property",
    "Active Users",
    "Conversions",
    "CVR",
    "CVR (excl. ads)",
    "CVR Change",
    "CVR (excl. ads) Change",
    "Description",
]


def format_cvr_table(records: Iterable[UnifiedRecord]) -> Table:
    """Project merged CVR records (basic + no-ads + change rates)."""
    if isinstance(records, Mapping):
        records = records.values()

    rows = [
        [
            record.period,
            record.source_name,
            count(record.get("active_users")),
            count(record.get("purchase_users")),
            format_percent(record.get("cvr")),
            format_percent(record.get("cvr_no_ads")),
            text(record.get("cvr_change_rate")),
            text(record.get("cvr_no_ads_change_rate")),
            record.source_description,
        ]
        for record in records
    ]
    return Table(list(CVR_HEADERS), rows)


FUNNEL_HEADERS = [
    "Period",
    "Property",
    "HP Visitors",
    "Plan Selection",
    "Booking Details",
    "Personal Info",
    "Booking Complete",
    "HP→Plan Rate",
    "Plan→Booking Rate",
    "Booking→Personal Rate",
    "Personal→Complete Rate",
    "Overall CVR",
    "Description",
]


def format_funnel_table(rows: Sequence[Mapping]) -> Table:
    return Table(
        list(FUNNEL_HEADERS),
        [
            [
                row.get("period"),
                row.get(SOURCE_NAME),
                count(row.get("first_visit_users")),
                count(row.get("plan_selection_users")),
                count(row.get("booking_input_users")),
                count(row.get("personal_info_users")),
                count(row.get("completion_users")),
                format_percent(row.get("hp_to_plan_rate")),
                format_percent(row.get("plan_to_booking_rate")),
                format_percent(row.get("booking_to_personal_rate")),
                format_percent(row.get("personal_to_completion_rate")),
                format_percent(row.get("overall_conversion_rate")),
                text(row.get(SOURCE_DESCRIPTION)),
            ]
            for row in rows
        ],
    )


TRAFFIC_HEADERS = [
    "Period",
    "Property",
    "Source / Medium",
    "Users",
    "Conversions",
    "CVR",
    "Share",
    "Description",
]


def format_traffic_table(rows: Sequence[Mapping]) -> Table:
    return Table(
        list(TRAFFIC_HEADERS),
        [
            [
                row.get("period"),
                row.get(SOURCE_NAME),
                text(row.get("source_medium")),
                count(row.get("total_users")),
                count(row.get("purchase_users")),
                format_percent(row.get("cvr_by_source")),
                format_percent(row.get("user_percentage")),
                text(row.get(SOURCE_DESCRIPTION)),
            ]
            for row in rows
        ],
    )


DEMOGRAPHICS_HEADERS = [
    "Period",
    "Property",
    "Attribute Type",
    "Attribute Value",
    "Users",
    "Conversions",
    "CVR",
    "Share",
    "Description",
]


def format_demographics_table(rows: Sequence[Mapping]) -> Table:
    return Table(
        list(DEMOGRAPHICS_HEADERS),
        [
            [
                row.get("period"),
                row.get(SOURCE_NAME),
                text(row.get("demographic_type")),
                text(row.get("demographic_value")),
                count(row.get("total_users")),
                count(row.get("purchase_users")),
                format_percent(row.get("cvr")),
                format_percent(row.get("percentage")),
                text(row.get(SOURCE_DESCRIPTION)),
            ]
            for row in rows
        ],
    )


SUMMARY_HEADERS = [
    "Property",
    "Latest CVR",
    "Latest Users",
    "Latest Bookings",
    "Latest Period",
    "Performance",
]


def format_summary_table(ranked: Sequence[SummarySnapshot]) -> Table:
    """Project snapshots already ordered by latest CVR descending."""
    return Table(
        list(SUMMARY_HEADERS),
        [
            [
                snapshot.source_name,
                format_percent(snapshot.latest_cvr),
                snapshot.latest_users,
                snapshot.latest_conversions,
                snapshot.latest_period,
                snapshot.performance_rank.value,
            ]
            for snapshot in ranked
        ],
    )


SOURCE_LIST_HEADERS = ["Property", "BigQuery Dataset", "Table Prefix", "Description", "Enabled"]


def format_source_list_table(sources: Sequence[SourceDescriptor]) -> Table:
    return Table(
        list(SOURCE_LIST_HEADERS),
        [
            [
                source.name,
                source.id,
                source.table_prefix,
                source.description,
                "Enabled" if source.enabled else "Disabled",
            ]
            for source in sources
        ],
    )
