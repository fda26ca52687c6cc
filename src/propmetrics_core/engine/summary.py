"""Latest-period snapshot and performance ranking per source."""
import logging
from typing import Mapping, Sequence

from .models import PERIOD, SOURCE_NAME, PerformanceRank, SummarySnapshot


logger = logging.getLogger(__name__)


HIGH_CVR_THRESHOLD = 0.05
LOW_CVR_THRESHOLD = 0.02


def classify(cvr: float) -> PerformanceRank:
    if cvr > HIGH_CVR_THRESHOLD:
        return PerformanceRank.HIGH
    if cvr < LOW_CVR_THRESHOLD:
        return PerformanceRank.LOW
    return PerformanceRank.AVERAGE


def summarize(basic_cvr_rows: Sequence[Mapping]) -> dict[str, SummarySnapshot]:
    """Build one snapshot per source from its latest-period basic CVR row.

    Args:
        basic_cvr_rows: Tagged rows of the basic_cvr dimension

    Returns:
        Dict of source_name -> SummarySnapshot, in first-seen source order
    """
    latest: dict[str, Mapping] = {}
    for row in basic_cvr_rows:
        name = row[SOURCE_NAME]
        if name not in latest or row[PERIOD] > latest[name][PERIOD]:
            latest[name] = row

    summary: dict[str, SummarySnapshot] = {}
    for name, row in latest.items():
        cvr = row.get("cvr") or 0.0
        summary[name] = SummarySnapshot(
            source_name=name,
            latest_period=row[PERIOD],
            latest_cvr=cvr,
            latest_users=row.get("active_users") or 0,
            latest_conversions=row.get("purchase_users") or 0,
            performance_rank=classify(cvr),
        )

    logger.debug("Summarized %s sources", len(summary))
    return summary


def rank(summary: Mapping[str, SummarySnapshot]) -> list[SummarySnapshot]:
    """Order snapshots by latest CVR descending (stable for ties)."""
    return sorted(summary.values(), key=lambda snapshot: snapshot.latest_cvr, reverse=True)
