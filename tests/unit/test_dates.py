"""Unit tests for reporting window resolution."""
from datetime import date

import pytest

from src.propmetrics_core.dates import (
    DateRange,
    DateRangeResolver,
    Granularity,
    period_label,
    shift_months,
    validate_date_range,
)
from src.propmetrics_core.exceptions import ValidationError


def _resolver(today: date) -> DateRangeResolver:
    return DateRangeResolver(today=lambda: today)


def test_reporting_range_ends_today():
    result = _resolver(date(2024, 6, 15)).resolve("month", 12)

    assert result == DateRange(date(2023, 6, 15), date(2024, 6, 15))


def test_reporting_range_clamps_short_months():
    result = _resolver(date(2024, 3, 31)).resolve(Granularity.QUARTER, 1)

    assert result.start == date(2024, 2, 29)
    assert result.end == date(2024, 3, 31)


def test_reporting_range_rejects_unknown_granularity():
    with pytest.raises(ValidationError):
        _resolver(date(2024, 6, 15)).resolve("week", 12)


def test_reporting_range_rejects_negative_lookback():
    with pytest.raises(ValidationError):
        _resolver(date(2024, 6, 15)).resolve("month", -1)


def test_current_month_handles_month_length():
    assert _resolver(date(2024, 2, 10)).resolve_period("month") == DateRange(
        date(2024, 2, 1), date(2024, 2, 29)
    )
    assert _resolver(date(2023, 2, 10)).resolve_period("month").end == date(2023, 2, 28)


def test_previous_month_rolls_over_year():
    assert _resolver(date(2024, 1, 31)).resolve_period("month", "previous") == DateRange(
        date(2023, 12, 1), date(2023, 12, 31)
    )


def test_current_quarter():
    assert _resolver(date(2024, 5, 20)).resolve_period("quarter") == DateRange(
        date(2024, 4, 1), date(2024, 6, 30)
    )
    assert _resolver(date(2024, 12, 31)).resolve_period("quarter") == DateRange(
        date(2024, 10, 1), date(2024, 12, 31)
    )


def test_previous_quarter_rolls_over_to_q4_of_previous_year():
    assert _resolver(date(2024, 2, 14)).resolve_period("quarter", "previous") == DateRange(
        date(2023, 10, 1), date(2023, 12, 31)
    )


def test_previous_quarter_within_year():
    assert _resolver(date(2024, 8, 1)).resolve_period("quarter", "previous") == DateRange(
        date(2024, 4, 1), date(2024, 6, 30)
    )


def test_resolve_period_rejects_bad_input():
    resolver = _resolver(date(2024, 8, 1))
    with pytest.raises(ValidationError):
        resolver.resolve_period("year")
    with pytest.raises(ValidationError):
        resolver.resolve_period("month", "next")


def test_period_labels_sort_chronologically():
    assert period_label("month", date(2024, 3, 5)) == "2024-03"
    assert period_label("quarter", date(2024, 3, 5)) == "2024-Q1"
    assert period_label("quarter", date(2024, 10, 1)) == "2024-Q4"

    labels = [period_label("month", date(2023, 12, 1)), period_label("month", date(2024, 1, 1))]
    assert labels == sorted(labels)


def test_shift_months_across_years():
    assert shift_months(date(2024, 1, 31), -2) == date(2023, 11, 30)
    assert shift_months(date(2023, 11, 15), 3) == date(2024, 2, 15)


def test_validate_date_range():
    validate_date_range(date(2024, 1, 1), date(2024, 1, 1))
    with pytest.raises(ValidationError):
        validate_date_range(date(2024, 2, 1), date(2024, 1, 1))
