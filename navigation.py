from dataclasses import dataclass
from datetime import date
from typing import Optional
from urllib.parse import urlencode

from periods import (
    DateRange,
    IntervalPreset,
    InvalidNavigation,
    RangePreset,
    next_range,
    previous_range,
    range_for,
)


@dataclass(frozen=True)
class NavigationState:
    range_preset: RangePreset
    interval_preset: IntervalPreset
    date_range: DateRange
    anchor: date
    # True when the requested range preset had to be replaced.
    redirected: bool = False


@dataclass(frozen=True)
class RangeOption:
    preset: RangePreset
    enabled: bool


def range_preset_can_contain_interval(
    range_preset: RangePreset, interval_preset: IntervalPreset
) -> bool:
    return range_preset.size_rank >= interval_preset.size_rank


def smallest_range_for_interval(interval_preset: IntervalPreset) -> RangePreset:
    candidates = [
        preset
        for preset in RangePreset
        if range_preset_can_contain_interval(preset, interval_preset)
    ]
    return min(candidates, key=lambda preset: preset.size_rank)


def range_options(interval_preset: IntervalPreset) -> list[RangeOption]:
    return [
        RangeOption(preset, range_preset_can_contain_interval(preset, interval_preset))
        for preset in RangePreset
    ]


def resolve(
    requested_range: RangePreset,
    requested_interval: IntervalPreset,
    anchor: date,
) -> NavigationState:
    """Normalize a navigation request into a concrete range.

    An interval that cannot fit in the requested range upgrades the range to
    the smallest preset that holds one full interval. Resolving the result
    again yields the same state.
    """
    range_preset = requested_range
    if not range_preset_can_contain_interval(requested_range, requested_interval):
        range_preset = smallest_range_for_interval(requested_interval)
    return NavigationState(
        range_preset=range_preset,
        interval_preset=requested_interval,
        date_range=range_for(range_preset, anchor),
        anchor=anchor,
        redirected=range_preset != requested_range,
    )


def _parse_preset(value: Optional[str], enum_cls, default):
    if value is None or value == "":
        return default
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise InvalidNavigation(f"Unknown {enum_cls.__name__}: {value}") from exc


def parse_anchor(value: Optional[str], today: date) -> date:
    if value is None or value == "":
        return today
    try:
        anchor = date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidNavigation(f"Invalid anchor date: {value}") from exc
    # Year 1 and 9999 have no neighbouring ranges to step to.
    if not (date.min.year < anchor.year < date.max.year):
        raise InvalidNavigation(f"Anchor date out of range: {value}")
    return anchor


@dataclass(frozen=True)
class NavigationRequest:
    range_preset: RangePreset
    interval_preset: IntervalPreset
    anchor: date
    summary: bool = False


def parse_navigation(
    range_value: Optional[str],
    interval_value: Optional[str],
    anchor_value: Optional[str],
    summary: Optional[bool] = None,
    *,
    today: date,
) -> NavigationRequest:
    return NavigationRequest(
        range_preset=_parse_preset(range_value, RangePreset, RangePreset.default()),
        interval_preset=_parse_preset(
            interval_value, IntervalPreset, IntervalPreset.default()
        ),
        anchor=parse_anchor(anchor_value, today),
        summary=bool(summary),
    )


@dataclass(frozen=True)
class TransactionsQuery:
    range_preset: RangePreset
    interval_preset: IntervalPreset
    anchor: date
    summary: bool = False

    def to_params(self) -> dict[str, str]:
        params = {
            "range": self.range_preset.value,
            "interval": self.interval_preset.value,
            "anchor": self.anchor.isoformat(),
        }
        if self.summary:
            params["summary"] = "true"
        return params

    def to_url(self, route: str) -> str:
        return f"{route}?{urlencode(self.to_params())}"


@dataclass(frozen=True)
class RangeNavLink:
    range: DateRange
    anchor: date

    @classmethod
    def for_range(cls, date_range: DateRange) -> "RangeNavLink":
        return cls(range=date_range, anchor=date_range.last_day)


@dataclass(frozen=True)
class RangeNavigation:
    preset: RangePreset
    range: DateRange
    prev: Optional[RangeNavLink] = None
    next: Optional[RangeNavLink] = None

    @classmethod
    def build(
        cls,
        preset: RangePreset,
        current: DateRange,
        bounds: Optional[DateRange],
    ) -> "RangeNavigation":
        """Neighbouring ranges, linked only while they still overlap the data.

        ``bounds`` spans the oldest through the newest transaction date; with
        no transactions at all there is nothing to step to.
        """
        if bounds is None:
            return cls(preset=preset, range=current)

        prev_link = None
        next_link = None
        try:
            prev_range = previous_range(preset, current)
        except InvalidNavigation:
            prev_range = None
        if prev_range is not None and prev_range.end > bounds.start:
            prev_link = RangeNavLink.for_range(prev_range)
        try:
            following = next_range(preset, current)
        except InvalidNavigation:
            following = None
        if following is not None and following.start < bounds.end:
            next_link = RangeNavLink.for_range(following)
        return cls(preset=preset, range=current, prev=prev_link, next=next_link)


def latest_link(
    preset: RangePreset, current: DateRange, bounds: Optional[DateRange]
) -> Optional[RangeNavLink]:
    """Link to the range holding the newest transaction, unless already there."""
    if bounds is None:
        return None
    newest = bounds.last_day
    if current.contains(newest):
        return None
    return RangeNavLink.for_range(range_for(preset, newest))
