"""Month-over-average spending trends per tag, as shown on the dashboard cards."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from aggregation import order_untagged_last, percent_of, round_half_up
from periods import month_range

if TYPE_CHECKING:  # pragma: no cover
    from grouping import TransactionRow

# Anything below 5.5 rounds to a displayed "5%" or less.
DISPLAY_THRESHOLD = Decimal("5.5")
MINIMUM_MONTHS_OF_DATA = 2
MONTHS_PER_YEAR = 12


class TrendState(str, Enum):
    on_track = "on_track"
    overspending = "overspending"
    saving = "saving"
    insufficient_data = "insufficient_data"


@dataclass(frozen=True)
class TagStat:
    tag_id: Optional[int]
    tag: str
    target_amount_cents: int
    percentage_of_total: int
    monthly_average_cents: Optional[Decimal]
    percentage_change: Optional[Decimal]
    annual_delta_cents: Optional[Decimal]
    historical_months: int
    months_of_data: int
    state: TrendState

    @property
    def displayed_change(self) -> Optional[str]:
        if self.percentage_change is None:
            return None
        return format_percentage(self.percentage_change)


def classify_trend(
    percentage_change: Optional[Decimal],
    historical_months: int,
    months_of_data: int,
) -> TrendState:
    if (
        percentage_change is None
        or historical_months < 1
        or months_of_data < MINIMUM_MONTHS_OF_DATA
    ):
        return TrendState.insufficient_data
    if abs(percentage_change) < DISPLAY_THRESHOLD:
        return TrendState.on_track
    if percentage_change >= DISPLAY_THRESHOLD:
        return TrendState.overspending
    return TrendState.saving


def format_percentage(value: Decimal) -> str:
    """Whole-number percentage text, never "-0"."""
    rounded = round_half_up(Decimal(value))
    return str(rounded) if rounded != 0 else "0"


def percentage_change(target: Decimal, average: Decimal) -> Decimal:
    if average > 0:
        return (target - average) / average * 100
    if target > 0:
        return Decimal(100)
    return Decimal(0)


class _TagHistory:
    def __init__(self, tag_id: Optional[int], label: str) -> None:
        self.tag_id = tag_id
        self.label = label
        self.target_cents = 0
        self.target_net_cents = 0
        self.historical_cents = 0
        self.historical_months: set[tuple[int, int]] = set()


def tag_statistics(
    transactions: Iterable[TransactionRow], target_month: date
) -> list[TagStat]:
    """Compare each tag's spend in ``target_month`` with its monthly average.

    The average is taken over the other months the tag has expenses in, so
    the target month never contributes to its own baseline. Tags whose
    target-month transactions net out positive (refunds) are left out.
    """
    target = month_range(target_month)
    histories: dict[Optional[int], _TagHistory] = {}

    for txn in transactions:
        history = histories.get(txn.tag_id)
        if history is None:
            history = histories[txn.tag_id] = _TagHistory(txn.tag_id, txn.tag_label)
        if target.contains(txn.date):
            history.target_net_cents += txn.amount_cents
            if txn.amount_cents < 0:
                history.target_cents += -txn.amount_cents
        elif txn.amount_cents < 0:
            history.historical_cents += -txn.amount_cents
            history.historical_months.add((txn.date.year, txn.date.month))

    reported = [
        h
        for h in histories.values()
        if h.target_cents > 0 and h.target_net_cents <= 0
    ]
    total_cents = sum(h.target_cents for h in reported)

    stats: list[TagStat] = []
    for history in reported:
        historical_months = len(history.historical_months)
        months_of_data = historical_months + 1
        average: Optional[Decimal] = None
        change: Optional[Decimal] = None
        annual_delta: Optional[Decimal] = None
        if historical_months:
            target_amount = Decimal(history.target_cents)
            average = Decimal(history.historical_cents) / historical_months
            change = percentage_change(target_amount, average)
            annual_delta = (target_amount - average) * MONTHS_PER_YEAR
        stats.append(
            TagStat(
                tag_id=history.tag_id,
                tag=history.label,
                target_amount_cents=history.target_cents,
                percentage_of_total=percent_of(history.target_cents, total_cents),
                monthly_average_cents=average,
                percentage_change=change,
                annual_delta_cents=annual_delta,
                historical_months=historical_months,
                months_of_data=months_of_data,
                state=classify_trend(change, historical_months, months_of_data),
            )
        )

    return order_untagged_last(
        stats, key=lambda s: (-s.target_amount_cents, s.tag.casefold())
    )
