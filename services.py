from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from aggregation import (
    is_excluded,
    monthly_expenses_by_tag,
    monthly_totals,
    sorted_months,
)
from config import get_settings
from grouping import Interval, TransactionRow, group_transactions
from models import ExcludedTag, ExclusionScope, Tag, Transaction
from navigation import (
    NavigationRequest,
    NavigationState,
    RangeNavigation,
    RangeNavLink,
    RangeOption,
    latest_link,
    range_options,
    resolve,
)
from periods import (
    ONE_DAY,
    DateRange,
    add_months,
    last_twelve_months,
    month_start,
    range_label,
)
from schemas import TagIn, TransactionIn
from trends import TagStat, tag_statistics

logger = logging.getLogger(__name__)


class TagNotFound(ValueError):
    pass


class TransactionNotFound(ValueError):
    pass


def get_current_user_id() -> int:
    return 1


def local_today() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def to_row(txn: Transaction) -> TransactionRow:
    return TransactionRow(
        id=txn.id,
        amount_cents=txn.amount_cents,
        date=txn.date,
        description=txn.description or "",
        tag_id=txn.tag_id,
        tag_name=txn.tag.name if txn.tag else None,
    )


class TagService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Tag]:
        stmt = select(Tag).where(Tag.user_id == self.user_id).order_by(Tag.name)
        return self.session.scalars(stmt).all()

    def get(self, tag_id: int) -> Tag:
        tag = self.session.get(Tag, tag_id)
        if not tag or tag.user_id != self.user_id:
            raise TagNotFound("Tag not found")
        return tag

    def _find_by_name(
        self, name: str, *, ignore_id: Optional[int] = None
    ) -> Optional[Tag]:
        stmt = select(Tag).where(
            Tag.user_id == self.user_id, func.lower(Tag.name) == name.lower()
        )
        if ignore_id is not None:
            stmt = stmt.where(Tag.id != ignore_id)
        return self.session.scalar(stmt)

    def create(self, data: TagIn) -> Tag:
        if self._find_by_name(data.name):
            raise ValueError("Tag already exists")
        tag = Tag(user_id=self.user_id, name=data.name)
        self.session.add(tag)
        self.session.commit()
        self.session.refresh(tag)
        return tag

    def rename(self, tag_id: int, data: TagIn) -> Tag:
        tag = self.get(tag_id)
        if self._find_by_name(data.name, ignore_id=tag_id):
            raise ValueError("Tag with this name already exists")
        tag.name = data.name
        self.session.commit()
        self.session.refresh(tag)
        return tag

    def delete(self, tag_id: int) -> None:
        tag = self.get(tag_id)
        self.session.execute(
            update(Transaction)
            .where(Transaction.user_id == self.user_id, Transaction.tag_id == tag.id)
            .values(tag_id=None)
        )
        self.session.execute(
            delete(ExcludedTag).where(
                ExcludedTag.user_id == self.user_id, ExcludedTag.tag_id == tag.id
            )
        )
        self.session.delete(tag)
        self.session.commit()
        logger.info(f"tag_deleted: tag_id={tag_id}")


class TransactionService:
    """Read side used by the grouping and trend engines, plus basic writes."""

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: TransactionIn) -> Transaction:
        if data.tag_id is not None:
            TagService(self.session, self.user_id).get(data.tag_id)
        txn = Transaction(
            user_id=self.user_id,
            date=data.date,
            amount_cents=data.amount_cents,
            description=data.description,
            tag_id=data.tag_id,
            import_id=data.import_id,
        )
        self.session.add(txn)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValueError("Transaction already imported") from exc
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.tag))
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise TransactionNotFound("Transaction not found")
        return txn

    def set_tag(self, transaction_id: int, tag_id: Optional[int]) -> Transaction:
        txn = self.get(transaction_id)
        if tag_id is not None:
            TagService(self.session, self.user_id).get(tag_id)
        txn.tag_id = tag_id
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def in_range(self, date_range: DateRange) -> list[TransactionRow]:
        """Transactions dated in ``[start, end)``, newest first, ties by id."""
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.tag))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date >= date_range.start,
                Transaction.date < date_range.end,
            )
            .order_by(Transaction.date.desc(), Transaction.id.asc())
        )
        return [to_row(txn) for txn in self.session.scalars(stmt).unique().all()]

    def date_bounds(self) -> Optional[DateRange]:
        row = self.session.execute(
            select(func.min(Transaction.date), func.max(Transaction.date)).where(
                Transaction.user_id == self.user_id
            )
        ).one()
        if row[0] is None or row[1] is None:
            return None
        return DateRange(row[0], row[1] + ONE_DAY)


class ExclusionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, scope: ExclusionScope) -> list[int]:
        stmt = (
            select(ExcludedTag.tag_id)
            .where(ExcludedTag.user_id == self.user_id, ExcludedTag.scope == scope)
            .order_by(ExcludedTag.tag_id)
        )
        return list(self.session.scalars(stmt).all())

    def save(self, scope: ExclusionScope, tag_ids: Iterable[int]) -> list[int]:
        """Replace the excluded tags of ``scope`` with ``tag_ids``."""
        wanted = sorted(set(tag_ids))
        tag_service = TagService(self.session, self.user_id)
        for tag_id in wanted:
            tag_service.get(tag_id)

        current = {
            row.tag_id: row
            for row in self.session.scalars(
                select(ExcludedTag).where(
                    ExcludedTag.user_id == self.user_id, ExcludedTag.scope == scope
                )
            )
        }
        for tag_id, row in current.items():
            if tag_id not in wanted:
                self.session.delete(row)
        self.session.add_all(
            ExcludedTag(user_id=self.user_id, scope=scope, tag_id=tag_id)
            for tag_id in wanted
            if tag_id not in current
        )
        self.session.commit()
        logger.info(f"excluded_tags_saved: scope={scope.value} tag_ids={wanted}")
        return wanted

    def tags_with_status(self, scope: ExclusionScope) -> list[dict[str, object]]:
        excluded = set(self.get(scope))
        return [
            {"id": tag.id, "name": tag.name, "is_excluded": tag.id in excluded}
            for tag in TagService(self.session, self.user_id).list_all()
        ]


@dataclass
class TransactionsView:
    state: NavigationState
    intervals: list[Interval]
    navigation: RangeNavigation
    latest: Optional[RangeNavLink]
    options: list[RangeOption]
    excluded_tag_ids: list[int]
    summary: bool
    has_any_transactions: bool
    empty_state: Optional[str] = None

    @property
    def label(self) -> str:
        return range_label(self.state.date_range)


class TransactionsViewService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        provider: Optional[TransactionService] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.provider = provider or TransactionService(session, self.user_id)

    def build(self, request: NavigationRequest) -> TransactionsView:
        state = resolve(request.range_preset, request.interval_preset, request.anchor)
        excluded = ExclusionService(self.session, self.user_id).get(
            ExclusionScope.transactions
        )
        rows = self.provider.in_range(state.date_range)
        intervals = group_transactions(
            rows,
            state.date_range,
            state.interval_preset,
            excluded,
            with_summary=request.summary,
        )
        bounds = self.provider.date_bounds()

        empty_state = None
        if not intervals:
            empty_state = "no_transactions"
        elif (
            request.summary
            and any(is_excluded(row.tag_id, excluded) for row in rows)
            and all(
                interval.summary is None or interval.summary.is_empty
                for interval in intervals
            )
        ):
            empty_state = "all_excluded"

        logger.debug(
            f"transactions_view: range={state.range_preset.value} "
            f"interval={state.interval_preset.value} rows={len(rows)} "
            f"intervals={len(intervals)}"
        )
        return TransactionsView(
            state=state,
            intervals=intervals,
            navigation=RangeNavigation.build(
                state.range_preset, state.date_range, bounds
            ),
            latest=latest_link(state.range_preset, state.date_range, bounds),
            options=range_options(state.interval_preset),
            excluded_tag_ids=excluded,
            summary=request.summary,
            has_any_transactions=bounds is not None,
            empty_state=empty_state,
        )


@dataclass
class DashboardData:
    window: DateRange
    displayed_month: date
    tag_stats: list[TagStat]
    months: list[date]
    monthly_totals: list[dict[str, object]]
    expenses_by_tag: list[tuple[str, list[Optional[int]]]]
    excluded_tag_ids: list[int] = field(default_factory=list)


class DashboardService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        provider: Optional[TransactionService] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.provider = provider or TransactionService(session, self.user_id)

    def build(
        self, today: date, *, months: Optional[int] = None
    ) -> Optional[DashboardData]:
        """Dashboard figures for the months ending with ``today``'s month.

        Returns ``None`` when the window holds no transactions. Trend cards
        describe the last complete month, so the current partial month never
        shows up as a sudden saving.
        """
        window = last_twelve_months(today, months or get_settings().dashboard_months)
        excluded = set(
            ExclusionService(self.session, self.user_id).get(ExclusionScope.dashboard)
        )
        rows = [
            row
            for row in self.provider.in_range(window)
            if row.tag_id is None or row.tag_id not in excluded
        ]
        if not rows:
            return None

        current_month = month_start(today)
        displayed_month = add_months(current_month, -1)
        # The running month is incomplete and must not feed any average.
        complete_rows = [row for row in rows if row.date < current_month]
        chart_months = sorted_months(rows)
        return DashboardData(
            window=window,
            displayed_month=displayed_month,
            tag_stats=tag_statistics(complete_rows, displayed_month),
            months=chart_months,
            monthly_totals=monthly_totals(rows),
            expenses_by_tag=monthly_expenses_by_tag(rows, chart_months),
            excluded_tag_ids=sorted(excluded),
        )
