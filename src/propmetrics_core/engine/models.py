"""Value types shared across the aggregation engine."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..dimensions import DimensionName  # noqa: F401


class PerformanceRank(str, Enum):
    HIGH = "High"
    AVERAGE = "Average"
    LOW = "Low"


# Row keys stamped onto every metric row by the orchestrator
PERIOD = "period"
SOURCE_NAME = "source_name"
SOURCE_DESCRIPTION = "source_description"

CHANGE_RATE = "change_rate"
CHANGE_RATE_PERCENTAGE = "change_rate_percentage"


@dataclass(frozen=True)
class SourceFailure:
    """A single source skipped within one dimension."""

    dimension: str
    source_name: str
    error: str


@dataclass
class UnifiedRecord:
    """Fields from several dimensions joined on (period, source_name)."""

    period: str
    source_name: str
    source_description: str = ""
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.period, self.source_name)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)


@dataclass(frozen=True)
class SummarySnapshot:
    """Latest-period performance of one source."""

    source_name: str
    latest_period: str
    latest_cvr: float
    latest_users: int
    latest_conversions: int
    performance_rank: PerformanceRank
