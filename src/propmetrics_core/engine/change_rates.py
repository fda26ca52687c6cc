"""Sequential period-over-period change rates per source."""
from typing import Mapping, Optional, Sequence

from .models import CHANGE_RATE, CHANGE_RATE_PERCENTAGE, PERIOD, SOURCE_NAME


def change_ratio(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    """Return current / previous, or None when either is absent or previous is 0."""
    if current is None or previous is None or previous == 0:
        return None
    return current / previous


def format_change(ratio: Optional[float]) -> Optional[str]:
    if ratio is None:
        return None
    return f"{(ratio - 1) * 100:.2f}%"


def compute_change_rates(rows: Sequence[Mapping], value_field: str) -> list[dict]:
    """Annotate rows with change_rate and change_rate_percentage.

    Rows are grouped by source_name (first-seen order) and sorted by period
    within each group. The earliest row of every group gets None for both.

    Args:
        rows: Metric rows tagged with period and source_name
        value_field: Field to compare, e.g. 'cvr' or 'cvr_no_ads'

    Returns:
        New row dicts with all original fields plus the two change fields
    """
    partitions: dict[str, list[Mapping]] = {}
    for row in rows:
        partitions.setdefault(row[SOURCE_NAME], []).append(row)

    result: list[dict] = []
    for source_rows in partitions.values():
        ordered = sorted(source_rows, key=lambda row: row[PERIOD])
        previous: Optional[Mapping] = None
        for current in ordered:
            ratio = None
            if previous is not None:
                ratio = change_ratio(current.get(value_field), previous.get(value_field))
            result.append(
                {
                    **current,
                    CHANGE_RATE: ratio,
                    CHANGE_RATE_PERCENTAGE: format_change(ratio),
                }
            )
            previous = current

    return result
