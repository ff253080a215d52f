from __future__ import annotations

import dataclasses
import datetime as dt
import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

from .dates import (
    ViewMode,
    add_months,
    end_of_month,
    end_of_week,
    is_weekend,
    start_of_month,
    start_of_week,
)


class SnapUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class SnapConfig:
    enabled: bool = True
    unit: SnapUnit = SnapUnit.DAY
    threshold_px: float = 15.0
    magnetic: bool = True
    smart: bool = True
    preserve_duration: bool = True
    allow_sub_day: bool = False
    month_boundary_window_days: int = 2

    def __post_init__(self) -> None:
        object.__setattr__(self, "unit", SnapUnit(self.unit))
        if self.threshold_px < 0:
            raise ValueError("threshold_px must be >= 0")
        if self.month_boundary_window_days < 0:
            raise ValueError("month_boundary_window_days must be >= 0")


DEFAULT_SNAP_CONFIG = SnapConfig()

_VIEW_MODE_SNAP: dict[ViewMode, dict[str, object]] = {
    ViewMode.WEEKLY: {"unit": SnapUnit.DAY, "threshold_px": 10.0, "allow_sub_day": False},
    ViewMode.MONTHLY: {"unit": SnapUnit.DAY, "threshold_px": 8.0, "allow_sub_day": False},
    ViewMode.QUARTERLY: {"unit": SnapUnit.WEEK, "threshold_px": 12.0, "allow_sub_day": False},
}


def snap_config_for_view_mode(view_mode: ViewMode, **overrides: object) -> SnapConfig:
    base = dataclasses.replace(DEFAULT_SNAP_CONFIG, **_VIEW_MODE_SNAP[ViewMode(view_mode)])
    return dataclasses.replace(base, **overrides) if overrides else base


@dataclass(frozen=True)
class SnapConstraints:
    min_date: dt.date | None = None
    max_date: dt.date | None = None
    preferred_dates: tuple[dt.date, ...] = ()
    blocked_dates: frozenset[dt.date] = frozenset()
    preferred_slack_days: int = 1

    def __post_init__(self) -> None:
        if self.min_date is not None and self.max_date is not None and self.max_date < self.min_date:
            raise ValueError("SnapConstraints.max_date must be >= min_date")
        object.__setattr__(self, "preferred_dates", tuple(self.preferred_dates))
        object.__setattr__(self, "blocked_dates", frozenset(self.blocked_dates))


@dataclass(frozen=True)
class SnapResult:
    snapped: dt.date
    original: dt.date
    was_snapped: bool
    reason: str
    distance_days: int


@dataclass(frozen=True)
class RangeSnapResult:
    start: dt.date
    end: dt.date
    start_snap: SnapResult
    end_snap: SnapResult
    duration_changed: bool


@dataclass(frozen=True)
class SnapFeedback:
    show_indicator: bool
    message: str
    intensity: float


BLOCKED_SEARCH_DAYS = 7


def smart_snap(value: dt.date, view_mode: ViewMode, config: SnapConfig = DEFAULT_SNAP_CONFIG) -> tuple[dt.date, str] | None:
    """Significant-date snap: weekend to nearer week edge (weekly), month edges (quarterly)."""
    view_mode = ViewMode(view_mode)
    if view_mode is ViewMode.QUARTERLY:
        window = config.month_boundary_window_days
        month_start = start_of_month(value)
        month_end = end_of_month(value)
        if (value - month_start).days <= window:
            return month_start, "Snapped to start of month"
        if (month_end - value).days <= window:
            return month_end, "Snapped to end of month"
    if view_mode is ViewMode.WEEKLY and is_weekend(value):
        week_start = start_of_week(value)
        week_end = end_of_week(value)
        if (value - week_start).days <= (week_end - value).days:
            return week_start, "Snapped to start of week"
        return week_end, "Snapped to end of week"
    return None


def grid_snap(value: dt.date, unit: SnapUnit) -> tuple[dt.date, str]:
    unit = SnapUnit(unit)
    if unit is SnapUnit.WEEK:
        return start_of_week(value), "Snapped to start of week"
    if unit is SnapUnit.MONTH:
        return start_of_month(value), "Snapped to start of month"
    return value, "Snapped to start of day"


def nearest_preferred(value: dt.date, preferred: Sequence[dt.date]) -> tuple[dt.date, int] | None:
    if not preferred:
        return None
    best = min(preferred, key=lambda d: (abs((d - value).days), d))
    return best, abs((best - value).days)


def avoid_blocked(value: dt.date, blocked: frozenset[dt.date]) -> dt.date:
    if value not in blocked:
        return value
    for offset in range(1, BLOCKED_SEARCH_DAYS + 1):
        later = value + dt.timedelta(days=offset)
        if later not in blocked:
            return later
        earlier = value - dt.timedelta(days=offset)
        if earlier not in blocked:
            return earlier
    return value


def snap_date(
    value: dt.date,
    view_mode: ViewMode,
    config: SnapConfig = DEFAULT_SNAP_CONFIG,
    constraints: SnapConstraints | None = None,
) -> SnapResult:
    """Clamp, smart snap, grid snap, then apply preferred/blocked dates.

    A grid-snapped value is passed through smart snap once more so that
    snapping a result again is a no-op.
    """
    if isinstance(value, dt.datetime):
        value = value.date()
    if not config.enabled:
        return SnapResult(snapped=value, original=value, was_snapped=False, reason="Snapping disabled", distance_days=0)

    snapped = value
    reason = ""
    if constraints is not None:
        if constraints.min_date is not None and snapped < constraints.min_date:
            snapped = constraints.min_date
            reason = "Constrained to minimum date"
        if constraints.max_date is not None and snapped > constraints.max_date:
            snapped = constraints.max_date
            reason = "Constrained to maximum date"

    smart = smart_snap(snapped, view_mode, config) if config.smart else None
    if smart is not None:
        snapped, reason = smart
    elif not reason:
        snapped, reason = grid_snap(snapped, config.unit)
        if config.smart:
            settled = smart_snap(snapped, view_mode, config)
            if settled is not None:
                snapped, reason = settled

    if constraints is not None:
        preferred = nearest_preferred(snapped, constraints.preferred_dates)
        if preferred is not None:
            target, distance = preferred
            if distance <= abs((snapped - value).days) + constraints.preferred_slack_days:
                snapped = target
                reason = "Snapped to preferred date"
        if constraints.blocked_dates:
            unblocked = avoid_blocked(snapped, constraints.blocked_dates)
            if unblocked != snapped:
                snapped = unblocked
                reason = "Moved off blocked date"
        if constraints.min_date is not None and snapped < constraints.min_date:
            snapped = constraints.min_date
            reason = "Constrained to minimum date"
        if constraints.max_date is not None and snapped > constraints.max_date:
            snapped = constraints.max_date
            reason = "Constrained to maximum date"

    distance = abs((snapped - value).days)
    return SnapResult(
        snapped=snapped,
        original=value,
        was_snapped=snapped != value,
        reason=reason,
        distance_days=distance,
    )


def snap_range(
    start: dt.date,
    end: dt.date,
    view_mode: ViewMode,
    config: SnapConfig = DEFAULT_SNAP_CONFIG,
    constraints: SnapConstraints | None = None,
) -> RangeSnapResult:
    length = (end - start).days
    start_snap = snap_date(start, view_mode, config, constraints)
    new_start = start_snap.snapped

    if config.preserve_duration:
        new_end = new_start + dt.timedelta(days=length)
        end_snap = SnapResult(
            snapped=new_end,
            original=end,
            was_snapped=new_end != end,
            reason="Calculated from snapped start date to preserve duration",
            distance_days=abs((new_end - end).days),
        )
        return RangeSnapResult(
            start=new_start, end=new_end, start_snap=start_snap, end_snap=end_snap, duration_changed=False
        )

    end_snap = snap_date(end, view_mode, config, constraints)
    new_end = end_snap.snapped
    if new_end <= new_start:
        new_end = new_start + dt.timedelta(days=max(1, length))
        end_snap = dataclasses.replace(
            end_snap,
            snapped=new_end,
            was_snapped=new_end != end,
            reason="Adjusted to ensure end date is after start date",
            distance_days=abs((new_end - end).days),
        )
    return RangeSnapResult(
        start=new_start,
        end=new_end,
        start_snap=start_snap,
        end_snap=end_snap,
        duration_changed=(new_end - new_start).days != length,
    )


def snap_pixel_to_date(
    pixel_x: float,
    viewport_start: dt.date,
    pixels_per_day: float,
    view_mode: ViewMode,
    config: SnapConfig = DEFAULT_SNAP_CONFIG,
) -> SnapResult:
    """Map an x offset into the viewport to a snapped date.

    Day precision truncates; with sub-day precision in weekly view the
    offset rounds to the nearest day instead.
    """
    if pixels_per_day <= 0:
        raise ValueError("pixels_per_day must be > 0")
    offset = pixel_x / pixels_per_day
    if config.allow_sub_day and ViewMode(view_mode) is ViewMode.WEEKLY:
        days = int(round(offset))
    else:
        days = math.floor(offset)
    return snap_date(viewport_start + dt.timedelta(days=days), view_mode, config)


def magnetic_strength(distance_px: float, threshold_px: float, config: SnapConfig = DEFAULT_SNAP_CONFIG) -> float:
    if not config.magnetic:
        return 1.0 if distance_px <= threshold_px else 0.0
    if distance_px <= threshold_px * 0.5:
        return 1.0
    if distance_px <= threshold_px * 0.75:
        return 0.8
    if distance_px <= threshold_px:
        return 0.5
    return 0.0


def snap_feedback(result: SnapResult) -> SnapFeedback:
    if not result.was_snapped:
        return SnapFeedback(show_indicator=False, message="", intensity=0.0)
    return SnapFeedback(
        show_indicator=True,
        message=result.reason,
        intensity=1.0 - min(1.0, result.distance_days / 7),
    )


def batch_snap(
    values: Iterable[dt.date],
    view_mode: ViewMode,
    config: SnapConfig = DEFAULT_SNAP_CONFIG,
    constraints: SnapConstraints | None = None,
) -> list[SnapResult]:
    return [snap_date(value, view_mode, config, constraints) for value in values]


def adjacent_snap_positions(value: dt.date, unit: SnapUnit) -> tuple[dt.date, dt.date]:
    unit = SnapUnit(unit)
    if unit is SnapUnit.WEEK:
        return value - dt.timedelta(weeks=1), value + dt.timedelta(weeks=1)
    if unit is SnapUnit.MONTH:
        return add_months(value, -1), add_months(value, 1)
    return value - dt.timedelta(days=1), value + dt.timedelta(days=1)
