from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import ExclusionScope
from navigation import NavigationRequest
from periods import DateRange, IntervalPreset, RangePreset
from schemas import TagIn, TransactionIn
from services import (
    DashboardService,
    ExclusionService,
    TagNotFound,
    TagService,
    TransactionService,
    TransactionsViewService,
)
from trends import TrendState


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    return Session(engine)


def _add(session, day: date, amount_cents: int, tag_id=None, description=""):
    return TransactionService(session).create(
        TransactionIn(
            date=day, amount_cents=amount_cents, tag_id=tag_id, description=description
        )
    )


def _september(summary: bool = False) -> NavigationRequest:
    return NavigationRequest(
        RangePreset.month, IntervalPreset.week, date(2024, 9, 10), summary
    )


def test_rows_in_range_are_newest_first() -> None:
    with make_session() as session:
        food = TagService(session).create(TagIn(name="Food"))
        _add(session, date(2024, 9, 3), -100, food.id)
        _add(session, date(2024, 9, 5), -200)
        _add(session, date(2024, 10, 1), -300)

        rows = TransactionService(session).in_range(
            DateRange(date(2024, 9, 1), date(2024, 10, 1))
        )

        assert [r.amount_cents for r in rows] == [-200, -100]
        assert rows[1].tag_name == "Food"
        assert rows[0].tag_label == "Other"


def test_date_bounds_cover_oldest_to_newest() -> None:
    with make_session() as session:
        assert TransactionService(session).date_bounds() is None

        _add(session, date(2024, 3, 9), -100)
        _add(session, date(2024, 9, 20), -100)

        bounds = TransactionService(session).date_bounds()
        assert bounds == DateRange(date(2024, 3, 9), date(2024, 9, 21))


def test_duplicate_import_id_is_rejected() -> None:
    with make_session() as session:
        service = TransactionService(session)
        data = TransactionIn(date=date(2024, 9, 1), amount_cents=-10, import_id="x-1")
        service.create(data)

        with pytest.raises(ValueError):
            service.create(data)


def test_transaction_with_unknown_tag_is_rejected() -> None:
    with make_session() as session:
        with pytest.raises(TagNotFound):
            _add(session, date(2024, 9, 1), -10, tag_id=42)


def test_duplicate_tag_names_are_rejected_case_insensitive() -> None:
    with make_session() as session:
        tags = TagService(session)
        tags.create(TagIn(name="Food"))

        with pytest.raises(ValueError):
            tags.create(TagIn(name=" food "))
        renamed = tags.rename(tags.list_all()[0].id, TagIn(name="Groceries"))
        assert renamed.name == "Groceries"
        tags.create(TagIn(name="Food"))
        with pytest.raises(ValueError):
            tags.rename(renamed.id, TagIn(name="FOOD"))


def test_exclusions_are_saved_per_scope() -> None:
    with make_session() as session:
        tags = TagService(session)
        food = tags.create(TagIn(name="Food"))
        rent = tags.create(TagIn(name="Rent"))
        exclusions = ExclusionService(session)

        exclusions.save(ExclusionScope.transactions, [rent.id, food.id, rent.id])

        assert exclusions.get(ExclusionScope.transactions) == sorted([food.id, rent.id])
        assert exclusions.get(ExclusionScope.dashboard) == []

        exclusions.save(ExclusionScope.transactions, [rent.id])
        assert exclusions.get(ExclusionScope.transactions) == [rent.id]

        status = exclusions.tags_with_status(ExclusionScope.transactions)
        assert status == [
            {"id": food.id, "name": "Food", "is_excluded": False},
            {"id": rent.id, "name": "Rent", "is_excluded": True},
        ]


def test_saving_unknown_excluded_tag_fails() -> None:
    with make_session() as session:
        with pytest.raises(TagNotFound):
            ExclusionService(session).save(ExclusionScope.dashboard, [99])


def test_deleting_tag_untags_transactions_and_drops_exclusions() -> None:
    with make_session() as session:
        food = TagService(session).create(TagIn(name="Food"))
        txn = _add(session, date(2024, 9, 1), -100, food.id)
        ExclusionService(session).save(ExclusionScope.dashboard, [food.id])

        TagService(session).delete(food.id)

        assert TransactionService(session).get(txn.id).tag_id is None
        assert ExclusionService(session).get(ExclusionScope.dashboard) == []


def test_view_without_transactions_reports_empty_state() -> None:
    with make_session() as session:
        view = TransactionsViewService(session).build(_september())

        assert view.intervals == []
        assert view.empty_state == "no_transactions"
        assert not view.has_any_transactions
        assert view.navigation.prev is None
        assert view.latest is None
        assert view.label == "1 Sep 2024 - 30 Sep 2024"


def test_view_keeps_excluded_rows_listed() -> None:
    with make_session() as session:
        rent = TagService(session).create(TagIn(name="Rent"))
        _add(session, date(2024, 9, 2), -90000, rent.id)
        _add(session, date(2024, 9, 3), -1500)
        ExclusionService(session).save(ExclusionScope.transactions, [rent.id])

        view = TransactionsViewService(session).build(_september())

        assert view.excluded_tag_ids == [rent.id]
        assert view.empty_state is None
        (week,) = view.intervals
        assert week.transaction_count == 2
        assert week.totals.expense_cents == -1500


def test_zero_amount_rows_are_not_reported_as_excluded() -> None:
    with make_session() as session:
        _add(session, date(2024, 9, 2), 0, description="Card check")

        view = TransactionsViewService(session).build(_september(summary=True))

        assert view.intervals[0].summary.is_empty
        assert view.empty_state is None


def test_summary_with_everything_excluded() -> None:
    with make_session() as session:
        rent = TagService(session).create(TagIn(name="Rent"))
        _add(session, date(2024, 9, 2), -90000, rent.id)
        ExclusionService(session).save(ExclusionScope.transactions, [rent.id])

        listing = TransactionsViewService(session).build(_september())
        summary = TransactionsViewService(session).build(_september(summary=True))

        assert listing.empty_state is None
        assert summary.empty_state == "all_excluded"
        assert summary.intervals[0].transaction_count == 1


def test_view_upgrades_range_for_large_interval() -> None:
    with make_session() as session:
        _add(session, date(2024, 9, 2), -100)
        request = NavigationRequest(
            RangePreset.week, IntervalPreset.quarter, date(2024, 9, 10)
        )

        view = TransactionsViewService(session).build(request)

        assert view.state.range_preset is RangePreset.quarter
        assert view.state.redirected
        assert len(view.intervals) == 1


def test_view_links_to_neighbours_with_data() -> None:
    with make_session() as session:
        _add(session, date(2024, 8, 20), -100)
        _add(session, date(2024, 9, 2), -100)
        _add(session, date(2024, 11, 2), -100)

        view = TransactionsViewService(session).build(_september())

        assert view.navigation.prev.anchor == date(2024, 8, 31)
        assert view.navigation.next.anchor == date(2024, 10, 31)
        assert view.latest.range == DateRange(date(2024, 11, 1), date(2024, 12, 1))


def test_dashboard_reports_the_last_complete_month() -> None:
    with make_session() as session:
        food = TagService(session).create(TagIn(name="Food"))
        _add(session, date(2024, 9, 7), -100, food.id)
        _add(session, date(2024, 8, 5), -50, food.id)
        _add(session, date(2024, 9, 3), -30)
        _add(session, date(2024, 10, 2), -999, food.id)

        data = DashboardService(session).build(date(2024, 10, 5))

        assert data.displayed_month == date(2024, 9, 1)
        assert data.window == DateRange(date(2023, 11, 1), date(2024, 11, 1))
        food_stat, other_stat = data.tag_stats
        assert food_stat.tag == "Food"
        assert food_stat.historical_months == 1
        assert food_stat.monthly_average_cents == Decimal(50)
        assert food_stat.state is TrendState.overspending
        assert other_stat.state is TrendState.insufficient_data
        assert data.months == [date(2024, 8, 1), date(2024, 9, 1), date(2024, 10, 1)]
        assert [t["label"] for t in data.monthly_totals] == [
            "2024-08",
            "2024-09",
            "2024-10",
        ]


def test_dashboard_drops_excluded_tags() -> None:
    with make_session() as session:
        food = TagService(session).create(TagIn(name="Food"))
        rent = TagService(session).create(TagIn(name="Rent"))
        _add(session, date(2024, 9, 7), -100, food.id)
        _add(session, date(2024, 9, 1), -90000, rent.id)
        ExclusionService(session).save(ExclusionScope.dashboard, [rent.id])

        data = DashboardService(session).build(date(2024, 10, 5))

        assert [s.tag for s in data.tag_stats] == ["Food"]
        assert data.tag_stats[0].percentage_of_total == 100
        assert data.excluded_tag_ids == [rent.id]
        assert [label for label, _ in data.expenses_by_tag] == ["Food"]


def test_dashboard_without_data_is_none() -> None:
    with make_session() as session:
        _add(session, date(2020, 1, 1), -100)

        assert DashboardService(session).build(date(2024, 10, 5)) is None


def test_dashboard_trends_ignore_the_running_month() -> None:
    with make_session() as session:
        food = TagService(session).create(TagIn(name="Food"))
        _add(session, date(2024, 9, 10), -100, food.id)
        _add(session, date(2024, 10, 1), -5000, food.id)

        data = DashboardService(session).build(date(2024, 10, 20))

        (food_stat,) = data.tag_stats
        assert food_stat.historical_months == 0
        assert food_stat.state is TrendState.insufficient_data
        assert data.months == [date(2024, 9, 1), date(2024, 10, 1)]
