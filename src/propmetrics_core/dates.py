"""Reporting window resolution (month/quarter, relative or absolute)."""
import calendar
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from .exceptions import ValidationError


class Granularity(str, Enum):
    """Period bucketing unit."""

    MONTH = "month"
    QUARTER = "quarter"


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date


def parse_granularity(value: "str | Granularity") -> Granularity:
    try:
        return Granularity(value)
    except ValueError:
        raise ValidationError(
            f"Unsupported period: {value!r} (expected 'month' or 'quarter')"
        ) from None


def quarter_of(month: int) -> int:
    return (month + 2) // 3


def shift_months(day: date, months: int) -> date:
    """Move a date by whole months, clamping the day to the target month length."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def period_label(granularity: "str | Granularity", day: date) -> str:
    """Return the YYYY-MM or YYYY-Qn label of the period containing day."""
    if parse_granularity(granularity) is Granularity.QUARTER:
        return f"{day.year}-Q{quarter_of(day.month)}"
    return f"{day.year}-{day.month:02d}"


def month_range(year: int, month: int) -> DateRange:
    last_day = calendar.monthrange(year, month)[1]
    return DateRange(date(year, month, 1), date(year, month, last_day))


def quarter_range(year: int, quarter: int) -> DateRange:
    if quarter not in (1, 2, 3, 4):
        raise ValidationError(f"Quarter must be 1-4, got {quarter}")
    start_month = (quarter - 1) * 3 + 1
    end_month = quarter * 3
    return DateRange(
        date(year, start_month, 1),
        month_range(year, end_month).end,
    )


def validate_date_range(start: date, end: date) -> None:
    if start > end:
        raise ValidationError(
            f"Start date {start.isoformat()} is after end date {end.isoformat()}"
        )


class DateRangeResolver:
    """Converts a requested reporting window into explicit start/end dates."""

    def __init__(
        self,
        tzinfo: Optional[ZoneInfo] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        """Initialize resolver.

        Args:
            tzinfo: Timezone used to determine "today" (defaults to UTC)
            today: Optional clock override returning the current date
        """
        self._tzinfo = tzinfo or ZoneInfo("UTC")
        self._today = today

    def today(self) -> date:
        if self._today is not None:
            return self._today()
        return datetime.now(self._tzinfo).date()

    def resolve(
        self, granularity: "str | Granularity", months_back: int
    ) -> DateRange:
        """Resolve a trailing reporting range ending today.

        Args:
            granularity: 'month' or 'quarter'
            months_back: Lookback length in months

        Raises:
            ValidationError: On unsupported granularity or negative lookback
        """
        parse_granularity(granularity)
        if months_back < 0:
            raise ValidationError(f"months_back must be >= 0, got {months_back}")

        end = self.today()
        start = shift_months(end, -months_back)
        validate_date_range(start, end)
        return DateRange(start, end)

    def resolve_period(
        self, granularity: "str | Granularity", which: str = "current"
    ) -> DateRange:
        """Resolve the first/last calendar day of the current or previous period.

        Raises:
            ValidationError: On unsupported granularity or selector
        """
        unit = parse_granularity(granularity)
        if which not in ("current", "previous"):
            raise ValidationError(
                f"Period selector must be 'current' or 'previous', got {which!r}"
            )

        today = self.today()

        if unit is Granularity.MONTH:
            target = today if which == "current" else shift_months(today.replace(day=1), -1)
            return month_range(target.year, target.month)

        year = today.year
        quarter = quarter_of(today.month)
        if which == "previous":
            quarter -= 1
            if quarter == 0:
                quarter = 4
                year -= 1
        return quarter_range(year, quarter)
