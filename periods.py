"""Calendar-aligned date ranges for the transactions page and dashboard.

Every range is half-open, ``[start, end)``, so adjacent ranges share a
boundary date without counting it twice.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Union

ONE_DAY = timedelta(days=1)

_MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


class InvalidNavigation(ValueError):
    pass


class _Preset(str, Enum):
    @property
    def size_rank(self) -> int:
        return _SIZE_RANKS[self.value]


class RangePreset(_Preset):
    week = "week"
    fortnight = "fortnight"
    month = "month"
    quarter = "quarter"
    half_year = "half-year"
    year = "year"

    @classmethod
    def default(cls) -> "RangePreset":
        return cls.month


class IntervalPreset(_Preset):
    week = "week"
    fortnight = "fortnight"
    month = "month"
    quarter = "quarter"
    half_year = "half-year"
    year = "year"

    @classmethod
    def default(cls) -> "IntervalPreset":
        return cls.week


_SIZE_RANKS = {
    "week": 1,
    "fortnight": 2,
    "month": 3,
    "quarter": 4,
    "half-year": 5,
    "year": 6,
}

Preset = Union[RangePreset, IntervalPreset]


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError("Range start must not be after its end")

    def contains(self, d: date) -> bool:
        return self.start <= d < self.end

    @property
    def last_day(self) -> date:
        return self.end - ONE_DAY

    @property
    def days(self) -> int:
        return (self.end - self.start).days

    def __str__(self) -> str:
        return range_label(self)


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_end(d: date) -> date:
    """Return the last day of the month containing ``d``."""
    return add_months(d, 1) - ONE_DAY


def _month_span(year: int, first_month: int, month_count: int) -> DateRange:
    start = date(year, first_month, 1)
    return DateRange(start, add_months(start, month_count))


def _week_bounds(anchor: date) -> DateRange:
    start = anchor - timedelta(days=anchor.weekday())
    return DateRange(start, start + timedelta(days=7))


def _fortnight_bounds(anchor: date) -> DateRange:
    if anchor.day <= 14:
        return DateRange(anchor.replace(day=1), anchor.replace(day=15))
    return DateRange(anchor.replace(day=15), add_months(anchor, 1))


def range_for(preset: Preset, anchor: date) -> DateRange:
    """Compute the calendar-aligned range of ``preset`` that contains ``anchor``."""
    value = preset.value if isinstance(preset, Enum) else str(preset)
    try:
        if value == "week":
            return _week_bounds(anchor)
        if value == "fortnight":
            return _fortnight_bounds(anchor)
        if value == "month":
            return _month_span(anchor.year, anchor.month, 1)
        if value == "quarter":
            return _month_span(anchor.year, ((anchor.month - 1) // 3) * 3 + 1, 3)
        if value == "half-year":
            return _month_span(anchor.year, 1 if anchor.month <= 6 else 7, 6)
        if value == "year":
            return _month_span(anchor.year, 1, 12)
    except (OverflowError, ValueError) as exc:
        raise InvalidNavigation(
            f"Cannot compute a {value} range around {anchor.isoformat()}"
        ) from exc
    raise InvalidNavigation(f"Unknown preset: {value}")


def next_range(preset: Preset, current: DateRange) -> DateRange:
    # `end` is already the day after the range's last day.
    return range_for(preset, current.end)


def previous_range(preset: Preset, current: DateRange) -> DateRange:
    try:
        day_before = current.start - ONE_DAY
    except OverflowError as exc:
        raise InvalidNavigation("No range precedes the earliest date") from exc
    return range_for(preset, day_before)


def intervals_within(date_range: DateRange, interval: Preset) -> list[DateRange]:
    """Split ``date_range`` into consecutive calendar intervals.

    Every interval keeps its full calendar bounds, so the first and last one
    may reach past the edges of ``date_range``; callers still select rows by
    ``date_range`` alone.
    """
    intervals: list[DateRange] = []
    cursor = date_range.start
    while cursor < date_range.end:
        aligned = range_for(interval, cursor)
        intervals.append(aligned)
        cursor = aligned.end
    return intervals


def month_range(d: date) -> DateRange:
    return range_for(RangePreset.month, d)


def last_twelve_months(today: date, months: int = 12) -> DateRange:
    end = add_months(today, 1)
    return DateRange(add_months(end, -months), end)


def format_date_label(d: date) -> str:
    return f"{d.day} {_MONTH_ABBREVIATIONS[d.month - 1]} {d.year:04d}"


def range_label(date_range: DateRange) -> str:
    start = format_date_label(date_range.start)
    end = format_date_label(date_range.last_day)
    return f"{start} - {end}"
