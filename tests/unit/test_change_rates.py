"""Unit tests for period-over-period change rates."""
import pytest

from src.propmetrics_core.engine.change_rates import (
    change_ratio,
    compute_change_rates,
    format_change,
)


def _row(source, period, **fields):
    return {"source_name": source, "period": period, **fields}


def test_two_source_scenario():
    rows = [
        _row("A", "2024-01", active_users=100, purchase_users=5, cvr=0.05),
        _row("A", "2024-02", active_users=120, purchase_users=9, cvr=0.075),
        _row("B", "2024-01", active_users=50, purchase_users=1, cvr=0.02),
    ]

    result = compute_change_rates(rows, "cvr")
    by_key = {(row["source_name"], row["period"]): row for row in result}

    assert by_key[("A", "2024-01")]["change_rate"] is None
    assert by_key[("A", "2024-01")]["change_rate_percentage"] is None

    assert by_key[("A", "2024-02")]["change_rate"] == pytest.approx(1.5)
    assert by_key[("A", "2024-02")]["change_rate_percentage"] == "50.00%"

    assert by_key[("B", "2024-01")]["change_rate"] is None


def test_partitions_sorted_by_period_and_never_cross_sources():
    rows = [
        _row("A", "2024-03", cvr=0.03),
        _row("B", "2024-02", cvr=0.10),
        _row("A", "2024-01", cvr=0.01),
        _row("A", "2024-02", cvr=0.02),
    ]

    result = compute_change_rates(rows, "cvr")

    assert [(r["source_name"], r["period"]) for r in result] == [
        ("A", "2024-01"),
        ("A", "2024-02"),
        ("A", "2024-03"),
        ("B", "2024-02"),
    ]
    assert result[1]["change_rate_percentage"] == "100.00%"
    assert result[2]["change_rate_percentage"] == "50.00%"
    assert result[3]["change_rate"] is None


def test_quarter_periods_sort_chronologically():
    rows = [
        _row("A", "2024-Q1", cvr=0.04),
        _row("A", "2023-Q4", cvr=0.05),
    ]

    result = compute_change_rates(rows, "cvr")

    assert result[0]["period"] == "2023-Q4"
    assert result[1]["change_rate_percentage"] == "-20.00%"


def test_zero_previous_value_yields_no_change_rate():
    rows = [_row("A", "2024-01", cvr=0.0), _row("A", "2024-02", cvr=0.05)]

    result = compute_change_rates(rows, "cvr")

    assert result[1]["change_rate"] is None
    assert result[1]["change_rate_percentage"] is None


def test_absent_previous_value_yields_no_change_rate():
    rows = [_row("A", "2024-01", cvr=None), _row("A", "2024-02", cvr=0.05)]

    result = compute_change_rates(rows, "cvr")

    assert result[1]["change_rate"] is None


def test_absent_current_value_yields_no_change_rate():
    rows = [_row("A", "2024-01", cvr=0.05), _row("A", "2024-02")]

    result = compute_change_rates(rows, "cvr")

    assert result[1]["change_rate"] is None


def test_explicit_value_field_ignores_other_rate_fields():
    rows = [
        _row("A", "2024-01", cvr=0.05, cvr_no_ads=0.02),
        _row("A", "2024-02", cvr=0.05, cvr_no_ads=0.03),
    ]

    assert compute_change_rates(rows, "cvr")[1]["change_rate_percentage"] == "0.00%"
    assert compute_change_rates(rows, "cvr_no_ads")[1]["change_rate_percentage"] == "50.00%"


def test_original_fields_preserved_and_inputs_untouched():
    rows = [_row("A", "2024-01", cvr=0.05, active_users=10)]

    result = compute_change_rates(rows, "cvr")

    assert result[0]["active_users"] == 10
    assert "change_rate" not in rows[0]


def test_helpers():
    assert change_ratio(2.0, 0) is None
    assert change_ratio(0.0, 2.0) == 0.0
    assert format_change(0.0) == "-100.00%"
    assert format_change(None) is None
