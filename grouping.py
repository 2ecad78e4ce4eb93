from bisect import bisect_right
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from aggregation import UNTAGGED_LABEL, CategorySummary, is_excluded, summarize
from periods import DateRange, IntervalPreset, intervals_within


@dataclass(frozen=True)
class TransactionRow:
    id: int
    amount_cents: int
    date: date
    description: str = ""
    tag_id: Optional[int] = None
    tag_name: Optional[str] = None

    @property
    def is_income(self) -> bool:
        return self.amount_cents > 0

    @property
    def is_expense(self) -> bool:
        return self.amount_cents < 0

    @property
    def tag_label(self) -> str:
        if self.tag_id is None or not self.tag_name:
            return UNTAGGED_LABEL
        return self.tag_name


@dataclass
class IntervalTotals:
    income_cents: int = 0
    # Kept negative, the sign is applied by whoever renders it.
    expense_cents: int = 0

    @property
    def net_cents(self) -> int:
        return self.income_cents + self.expense_cents


@dataclass
class DayGroup:
    date: date
    transactions: list[TransactionRow] = field(default_factory=list)


@dataclass
class Interval:
    range: DateRange
    totals: IntervalTotals = field(default_factory=IntervalTotals)
    days: list[DayGroup] = field(default_factory=list)
    summary: Optional[CategorySummary] = None

    @property
    def transactions(self) -> list[TransactionRow]:
        return [txn for day in self.days for txn in day.transactions]

    @property
    def transaction_count(self) -> int:
        return sum(len(day.transactions) for day in self.days)

    @property
    def latest_date(self) -> Optional[date]:
        return self.days[0].date if self.days else None


def sort_for_table(transactions: Iterable[TransactionRow]) -> list[TransactionRow]:
    """Newest date first; equal dates keep insertion order via ascending id."""
    return sorted(transactions, key=lambda txn: (-txn.date.toordinal(), txn.id))


def group_by_day(transactions: Iterable[TransactionRow]) -> list[DayGroup]:
    days: list[DayGroup] = []
    for txn in sort_for_table(transactions):
        if not days or days[-1].date != txn.date:
            days.append(DayGroup(date=txn.date))
        days[-1].transactions.append(txn)
    return days


def compute_totals(
    transactions: Iterable[TransactionRow], excluded_tag_ids: Collection[int] = ()
) -> IntervalTotals:
    totals = IntervalTotals()
    for txn in transactions:
        if is_excluded(txn.tag_id, excluded_tag_ids):
            continue
        if txn.amount_cents > 0:
            totals.income_cents += txn.amount_cents
        elif txn.amount_cents < 0:
            totals.expense_cents += txn.amount_cents
    return totals


def group_transactions(
    transactions: Iterable[TransactionRow],
    date_range: DateRange,
    interval_preset: IntervalPreset,
    excluded_tag_ids: Collection[int] = (),
    *,
    with_summary: bool = False,
) -> list[Interval]:
    """Bucket the transactions of ``date_range`` into intervals and days.

    Exclusions only change the totals (and summaries); every in-range
    transaction is still listed in its day group.
    """
    excluded = set(excluded_tag_ids)
    bounds = intervals_within(date_range, interval_preset)
    starts = [b.start for b in bounds]
    members: list[list[TransactionRow]] = [[] for _ in bounds]

    for txn in transactions:
        if not date_range.contains(txn.date):
            continue
        # Intervals cover the range back to back, so the last one starting
        # on or before the date holds it.
        members[bisect_right(starts, txn.date) - 1].append(txn)

    intervals: list[Interval] = []
    for interval_range, rows in zip(bounds, members):
        if not rows:
            continue
        interval = Interval(
            range=interval_range,
            totals=compute_totals(rows, excluded),
            days=group_by_day(rows),
        )
        if with_summary:
            interval.summary = summarize(rows, excluded)
        intervals.append(interval)

    intervals.sort(key=lambda i: i.latest_date, reverse=True)
    return intervals
