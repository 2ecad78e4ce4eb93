from datetime import date
from decimal import Decimal

import pytest

from grouping import TransactionRow
from trends import (
    TrendState,
    classify_trend,
    format_percentage,
    percentage_change,
    tag_statistics,
)

SEPTEMBER = date(2024, 9, 1)


def test_target_month_is_compared_with_historical_average() -> None:
    rows = [
        TransactionRow(1, -100, date(2024, 9, 7), tag_id=1, tag_name="Food"),
        TransactionRow(2, -50, date(2024, 8, 5), tag_id=1, tag_name="Food"),
        TransactionRow(3, -30, date(2024, 9, 3)),
    ]

    food, other = tag_statistics(rows, SEPTEMBER)

    assert food.tag == "Food"
    assert food.target_amount_cents == 100
    assert food.monthly_average_cents == Decimal(50)
    assert food.percentage_change == Decimal(100)
    assert food.displayed_change == "100"
    assert food.annual_delta_cents == Decimal(600)
    assert food.months_of_data == 2
    assert food.state is TrendState.overspending
    assert food.percentage_of_total == 77

    assert other.tag == "Other"
    assert other.tag_id is None
    assert other.target_amount_cents == 30
    assert other.percentage_change is None
    assert other.state is TrendState.insufficient_data
    assert other.percentage_of_total == 23


def test_average_spans_only_months_with_expenses() -> None:
    rows = [
        TransactionRow(1, -90, date(2024, 9, 2), tag_id=1, tag_name="Food"),
        TransactionRow(2, -60, date(2024, 6, 2), tag_id=1, tag_name="Food"),
        TransactionRow(3, -40, date(2024, 6, 20), tag_id=1, tag_name="Food"),
        TransactionRow(4, -100, date(2024, 8, 2), tag_id=1, tag_name="Food"),
    ]

    (food,) = tag_statistics(rows, SEPTEMBER)

    assert food.historical_months == 2
    assert food.months_of_data == 3
    assert food.monthly_average_cents == Decimal(100)
    assert food.percentage_change == Decimal(-10)
    assert food.state is TrendState.saving


def test_tags_without_target_month_spend_are_left_out() -> None:
    rows = [
        TransactionRow(1, -100, date(2024, 8, 7), tag_id=1, tag_name="Food"),
        TransactionRow(2, 500, date(2024, 9, 1), tag_id=2, tag_name="Salary"),
        TransactionRow(3, -40, date(2024, 9, 2), tag_id=3, tag_name="Shop"),
        TransactionRow(4, 60, date(2024, 9, 9), tag_id=3, tag_name="Shop"),
        TransactionRow(5, -20, date(2024, 9, 9), tag_id=4, tag_name="Cafe"),
    ]

    stats = tag_statistics(rows, SEPTEMBER)

    assert [s.tag for s in stats] == ["Cafe"]
    assert stats[0].percentage_of_total == 100


def test_stats_are_ordered_by_amount_with_other_last() -> None:
    rows = [
        TransactionRow(1, -500, date(2024, 9, 2)),
        TransactionRow(2, -20, date(2024, 9, 2), tag_id=1, tag_name="Cafe"),
        TransactionRow(3, -80, date(2024, 9, 2), tag_id=2, tag_name="Books"),
        TransactionRow(4, -20, date(2024, 9, 2), tag_id=3, tag_name="Apps"),
    ]

    stats = tag_statistics(rows, SEPTEMBER)

    assert [s.tag for s in stats] == ["Books", "Apps", "Cafe", "Other"]


@pytest.mark.parametrize(
    "change, expected",
    [
        ("5.49", TrendState.on_track),
        ("5.5", TrendState.overspending),
        ("-5.49", TrendState.on_track),
        ("-5.5", TrendState.saving),
        ("0", TrendState.on_track),
    ],
)
def test_classification_boundaries(change, expected) -> None:
    assert classify_trend(Decimal(change), 1, 2) is expected


@pytest.mark.parametrize(
    "change, shown",
    [("5.49", "5"), ("5.5", "6"), ("-5.49", "-5"), ("-5.5", "-6"), ("-0.4", "0")],
)
def test_displayed_percentage_agrees_with_classification(change, shown) -> None:
    assert format_percentage(Decimal(change)) == shown


def test_classification_needs_history() -> None:
    assert classify_trend(None, 0, 1) is TrendState.insufficient_data
    assert classify_trend(Decimal(50), 0, 1) is TrendState.insufficient_data
    assert classify_trend(Decimal(50), 1, 1) is TrendState.insufficient_data
    assert classify_trend(Decimal(50), 1, 2) is TrendState.overspending


def test_percentage_change_with_empty_average() -> None:
    assert percentage_change(Decimal(10), Decimal(0)) == Decimal(100)
    assert percentage_change(Decimal(0), Decimal(0)) == Decimal(0)
    assert percentage_change(Decimal(75), Decimal(100)) == Decimal(-25)
