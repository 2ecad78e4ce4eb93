"""Per-tag totals, percentages and chart series.

Amounts are integer cents throughout; only percentages go through
``Decimal`` so the list view and the summary view round identically.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from periods import month_start

if TYPE_CHECKING:  # pragma: no cover
    from grouping import TransactionRow

UNTAGGED_LABEL = "Other"


class CategoryKind(str, Enum):
    income = "income"
    expense = "expense"


@dataclass(frozen=True)
class CategoryTotal:
    tag_id: Optional[int]
    label: str
    total_cents: int
    percent: int
    kind: CategoryKind
    transaction_count: int

    @property
    def is_untagged(self) -> bool:
        return self.tag_id is None


@dataclass(frozen=True)
class CategorySummary:
    income_categories: list[CategoryTotal] = field(default_factory=list)
    expense_categories: list[CategoryTotal] = field(default_factory=list)

    @property
    def income_total_cents(self) -> int:
        return sum(c.total_cents for c in self.income_categories)

    @property
    def expense_total_cents(self) -> int:
        return sum(c.total_cents for c in self.expense_categories)

    @property
    def is_empty(self) -> bool:
        return not self.income_categories and not self.expense_categories


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(value: int, total: int) -> int:
    """Whole-number share of ``value`` in ``total``; 0 when the pool is empty."""
    if total == 0:
        return 0
    return abs(round_half_up(Decimal(value) / Decimal(total) * 100))


def is_excluded(tag_id: Optional[int], excluded_tag_ids: Collection[int]) -> bool:
    return tag_id is not None and tag_id in excluded_tag_ids


def order_untagged_last(items: list, key) -> list:
    """Sort ``items`` by ``key`` and move the untagged bucket to the end."""
    tagged = sorted((i for i in items if i.tag_id is not None), key=key)
    untagged = [i for i in items if i.tag_id is None]
    return tagged + untagged


class _Bucket:
    def __init__(self, tag_id: Optional[int], label: str) -> None:
        self.tag_id = tag_id
        self.label = label
        self.total_cents = 0
        self.count = 0


def _pool_categories(
    buckets: dict[Optional[int], _Bucket], kind: CategoryKind
) -> list[CategoryTotal]:
    pool_total = sum(b.total_cents for b in buckets.values())
    categories = [
        CategoryTotal(
            tag_id=b.tag_id,
            label=b.label,
            total_cents=b.total_cents,
            percent=percent_of(b.total_cents, pool_total),
            kind=kind,
            transaction_count=b.count,
        )
        for b in buckets.values()
    ]
    return order_untagged_last(
        categories, key=lambda c: (-abs(c.total_cents), c.label.casefold())
    )


def summarize(
    transactions: Iterable[TransactionRow],
    excluded_tag_ids: Collection[int] = (),
) -> CategorySummary:
    """Build income and expense category summaries for a slice of transactions.

    Excluded tags are dropped before the income/expense split, so they affect
    neither the category totals nor the pool totals the percentages use.
    """
    excluded = set(excluded_tag_ids)
    income: dict[Optional[int], _Bucket] = {}
    expense: dict[Optional[int], _Bucket] = {}

    for txn in transactions:
        if is_excluded(txn.tag_id, excluded):
            continue
        if txn.amount_cents > 0:
            pool = income
        elif txn.amount_cents < 0:
            pool = expense
        else:
            continue
        bucket = pool.get(txn.tag_id)
        if bucket is None:
            bucket = pool[txn.tag_id] = _Bucket(txn.tag_id, txn.tag_label)
        bucket.total_cents += txn.amount_cents
        bucket.count += 1

    return CategorySummary(
        income_categories=_pool_categories(income, CategoryKind.income),
        expense_categories=_pool_categories(expense, CategoryKind.expense),
    )


def sorted_months(transactions: Iterable[TransactionRow]) -> list[date]:
    return sorted({month_start(txn.date) for txn in transactions})


def monthly_totals(transactions: Iterable[TransactionRow]) -> list[dict[str, object]]:
    income: dict[date, int] = {}
    expense: dict[date, int] = {}
    for txn in transactions:
        month = month_start(txn.date)
        if txn.amount_cents >= 0:
            income[month] = income.get(month, 0) + txn.amount_cents
        else:
            expense[month] = expense.get(month, 0) + txn.amount_cents

    out: list[dict[str, object]] = []
    for month in sorted(set(income) | set(expense)):
        month_income = income.get(month, 0)
        month_expense = expense.get(month, 0)
        out.append(
            {
                "year": month.year,
                "month": month.month,
                "label": f"{month.year:04d}-{month.month:02d}",
                "income_cents": month_income,
                "expense_cents": month_expense,
                "net_cents": month_income + month_expense,
            }
        )
    return out


def monthly_expenses_by_tag(
    transactions: Iterable[TransactionRow], months: Sequence[date]
) -> list[tuple[str, list[Optional[int]]]]:
    """Absolute expense per tag per month, for a stacked bar chart.

    Tags are alphabetical with "Other" last; a month without expenses for a
    tag is ``None`` rather than zero so the chart leaves a gap.
    """
    by_tag: dict[Optional[int], dict[date, int]] = {}
    labels: dict[Optional[int], str] = {}
    for txn in transactions:
        if txn.amount_cents >= 0:
            continue
        month = month_start(txn.date)
        per_month = by_tag.setdefault(txn.tag_id, {})
        per_month[month] = per_month.get(month, 0) + abs(txn.amount_cents)
        labels[txn.tag_id] = txn.tag_label

    tag_ids = sorted(
        (tag_id for tag_id in by_tag if tag_id is not None),
        key=lambda tag_id: labels[tag_id].casefold(),
    )
    if None in by_tag:
        tag_ids.append(None)

    return [
        (labels[tag_id], [by_tag[tag_id].get(month) for month in months])
        for tag_id in tag_ids
    ]
