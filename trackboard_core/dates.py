"""Pure calendar math for the timeline board.

Everything here is side-effect free so it can run inside the drag loop.
Datetimes are normalized to their calendar date before comparison.
"""

from __future__ import annotations

import calendar
import datetime as dt
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Sequence

from .schema import Tracker


class ViewMode(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


@dataclass(frozen=True)
class DateRangeInfo:
    start: dt.date
    end: dt.date
    duration: int
    unit: str
    label: str
    short_label: str


@dataclass(frozen=True)
class NavigationBounds:
    can_go_previous: bool
    can_go_next: bool
    min_date: dt.date
    max_date: dt.date


@dataclass(frozen=True)
class ViewModeRange:
    visible: DateRangeInfo
    extended: DateRangeInfo
    previous: DateRangeInfo
    next: DateRangeInfo
    bounds: NavigationBounds


@dataclass(frozen=True)
class DateGap:
    start: dt.date
    end: dt.date
    duration: int
    before_tracker: str
    after_tracker: str


@dataclass(frozen=True)
class DateOverlap:
    trackers: tuple[Tracker, Tracker]
    start: dt.date
    end: dt.date
    duration: int


@dataclass(frozen=True)
class TrackerCoverage:
    by_week: dict[str, tuple[Tracker, ...]] = field(default_factory=dict)
    by_month: dict[str, tuple[Tracker, ...]] = field(default_factory=dict)
    by_quarter: dict[str, tuple[Tracker, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class TrackerDateMetrics:
    total_span: DateRangeInfo | None
    coverage: TrackerCoverage
    gaps: tuple[DateGap, ...]
    overlaps: tuple[DateOverlap, ...]


@dataclass(frozen=True)
class RangeStats:
    total_days: int = 0
    average_duration: float = 0.0
    shortest_duration: int = 0
    longest_duration: int = 0
    working_days_total: int = 0


@dataclass(frozen=True)
class ViewModeRecommendation:
    recommended: ViewMode
    reasons: tuple[str, ...]
    scores: dict[ViewMode, int]


def as_date(value: dt.date) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    return value


def inclusive_days(start: dt.date, end: dt.date) -> int:
    return (as_date(end) - as_date(start)).days + 1


def ranges_overlap(start_a: dt.date, end_a: dt.date, start_b: dt.date, end_b: dt.date) -> bool:
    """Overlap unless one range ends strictly before the other begins."""
    return not (as_date(end_a) < as_date(start_b) or as_date(start_a) > as_date(end_b))


def overlap_span(
    start_a: dt.date, end_a: dt.date, start_b: dt.date, end_b: dt.date
) -> tuple[dt.date, dt.date] | None:
    start = max(as_date(start_a), as_date(start_b))
    end = min(as_date(end_a), as_date(end_b))
    if start > end:
        return None
    return (start, end)


def start_of_week(value: dt.date) -> dt.date:
    day = as_date(value)
    return day - dt.timedelta(days=day.weekday())


def end_of_week(value: dt.date) -> dt.date:
    return start_of_week(value) + dt.timedelta(days=6)


def start_of_month(value: dt.date) -> dt.date:
    return as_date(value).replace(day=1)


def end_of_month(value: dt.date) -> dt.date:
    day = as_date(value)
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def quarter_of(value: dt.date) -> int:
    return (as_date(value).month - 1) // 3 + 1


def start_of_quarter(value: dt.date) -> dt.date:
    day = as_date(value)
    return dt.date(day.year, 3 * (quarter_of(day) - 1) + 1, 1)


def end_of_quarter(value: dt.date) -> dt.date:
    first = start_of_quarter(value)
    return end_of_month(add_months(first, 2))


def add_months(value: dt.date, months: int) -> dt.date:
    day = as_date(value)
    index = day.month - 1 + months
    year = day.year + index // 12
    month = index % 12 + 1
    last = calendar.monthrange(year, month)[1]
    return dt.date(year, month, min(day.day, last))


def add_years(value: dt.date, years: int) -> dt.date:
    return add_months(value, 12 * years)


def is_weekend(value: dt.date) -> bool:
    return as_date(value).weekday() >= 5


def week_key(value: dt.date) -> str:
    year, week, _ = as_date(value).isocalendar()
    return f"{year}-W{week:02d}"


def month_key(value: dt.date) -> str:
    day = as_date(value)
    return f"{day.year}-{day.month:02d}"


def quarter_key(value: dt.date) -> str:
    day = as_date(value)
    return f"{day.year}-Q{quarter_of(day)}"


def visible_range(anchor: dt.date, view_mode: ViewMode) -> DateRangeInfo:
    mode = ViewMode(view_mode)
    if mode is ViewMode.WEEKLY:
        start, end, unit = start_of_week(anchor), end_of_week(anchor), "weeks"
    elif mode is ViewMode.MONTHLY:
        start, end, unit = start_of_month(anchor), end_of_month(anchor), "months"
    else:
        start, end, unit = start_of_quarter(anchor), end_of_quarter(anchor), "quarters"
    return DateRangeInfo(
        start=start,
        end=end,
        duration=inclusive_days(start, end),
        unit=unit,
        label=format_range_label(start, end, mode),
        short_label=format_range_short_label(start, end, mode),
    )


def shift_anchor(anchor: dt.date, view_mode: ViewMode, steps: int) -> dt.date:
    mode = ViewMode(view_mode)
    if mode is ViewMode.WEEKLY:
        return as_date(anchor) + dt.timedelta(weeks=steps)
    if mode is ViewMode.MONTHLY:
        return add_months(anchor, steps)
    return add_months(anchor, 3 * steps)


def previous_range(anchor: dt.date, view_mode: ViewMode) -> DateRangeInfo:
    return visible_range(shift_anchor(anchor, view_mode, -1), view_mode)


def next_range(anchor: dt.date, view_mode: ViewMode) -> DateRangeInfo:
    return visible_range(shift_anchor(anchor, view_mode, 1), view_mode)


def extended_range(visible: DateRangeInfo, buffer_multiplier: float = 0.5) -> DateRangeInfo:
    if buffer_multiplier < 0:
        raise ValueError("buffer_multiplier must be >= 0")
    buffer_days = math.ceil(visible.duration * buffer_multiplier)
    start = visible.start - dt.timedelta(days=buffer_days)
    end = visible.end + dt.timedelta(days=buffer_days)
    return DateRangeInfo(
        start=start,
        end=end,
        duration=inclusive_days(start, end),
        unit=visible.unit,
        label=f"Extended {visible.label}",
        short_label=f"Ext {visible.short_label}",
    )


def view_mode_range(
    anchor: dt.date,
    view_mode: ViewMode,
    *,
    today: dt.date,
    buffer_multiplier: float = 0.5,
    years_back: int = 2,
    years_ahead: int = 5,
) -> ViewModeRange:
    visible = visible_range(anchor, view_mode)
    min_date = add_years(today, -years_back)
    max_date = add_years(today, years_ahead)
    return ViewModeRange(
        visible=visible,
        extended=extended_range(visible, buffer_multiplier),
        previous=previous_range(anchor, view_mode),
        next=next_range(anchor, view_mode),
        bounds=NavigationBounds(
            can_go_previous=visible.start > min_date,
            can_go_next=visible.end < max_date,
            min_date=min_date,
            max_date=max_date,
        ),
    )


def format_range_label(start: dt.date, end: dt.date, view_mode: ViewMode) -> str:
    mode = ViewMode(view_mode)
    if mode is ViewMode.MONTHLY:
        return start.strftime("%B %Y")
    if mode is ViewMode.QUARTERLY:
        return f"Q{quarter_of(start)} {start.year}"
    if (start.year, start.month) == (end.year, end.month):
        return f"{start.strftime('%b')} {start.day} - {end.day}, {end.year}"
    return f"{start.strftime('%b')} {start.day} - {end.strftime('%b')} {end.day}, {end.year}"


def format_range_short_label(start: dt.date, end: dt.date, view_mode: ViewMode) -> str:
    mode = ViewMode(view_mode)
    if mode is ViewMode.MONTHLY:
        return start.strftime("%b %y")
    if mode is ViewMode.QUARTERLY:
        return f"Q{quarter_of(start)} '{start.strftime('%y')}"
    return f"{start.strftime('%b')} {start.day}"


def tracker_date_metrics(trackers: Sequence[Tracker]) -> TrackerDateMetrics:
    if not trackers:
        return TrackerDateMetrics(total_span=None, coverage=TrackerCoverage(), gaps=(), overlaps=())

    span_start = min(t.start_date for t in trackers)
    span_end = max(t.end_date for t in trackers)
    total_span = DateRangeInfo(
        start=span_start,
        end=span_end,
        duration=inclusive_days(span_start, span_end),
        unit="days",
        label=format_range_label(span_start, span_end, ViewMode.WEEKLY),
        short_label=format_range_short_label(span_start, span_end, ViewMode.MONTHLY),
    )
    return TrackerDateMetrics(
        total_span=total_span,
        coverage=tracker_coverage(trackers, span_start, span_end),
        gaps=find_date_gaps(trackers),
        overlaps=find_date_overlaps(trackers),
    )


def tracker_coverage(trackers: Sequence[Tracker], range_start: dt.date, range_end: dt.date) -> TrackerCoverage:
    by_week: dict[str, list[Tracker]] = {}
    by_month: dict[str, list[Tracker]] = {}
    by_quarter: dict[str, list[Tracker]] = {}

    # Every period in range gets a key, even if nothing covers it.
    for week_start in _iter_steps(start_of_week(range_start), range_end, lambda d: d + dt.timedelta(weeks=1)):
        by_week.setdefault(week_key(week_start), [])
    for month_start in _iter_steps(start_of_month(range_start), range_end, lambda d: add_months(d, 1)):
        by_month.setdefault(month_key(month_start), [])
        by_quarter.setdefault(quarter_key(month_start), [])

    for tracker in trackers:
        start = max(tracker.start_date, range_start)
        end = min(tracker.end_date, range_end)
        if start > end:
            continue
        for week_start in _iter_steps(start_of_week(start), end, lambda d: d + dt.timedelta(weeks=1)):
            by_week.setdefault(week_key(week_start), []).append(tracker)
        seen_quarters: set[str] = set()
        for month_start in _iter_steps(start_of_month(start), end, lambda d: add_months(d, 1)):
            by_month.setdefault(month_key(month_start), []).append(tracker)
            qkey = quarter_key(month_start)
            if qkey not in seen_quarters:
                seen_quarters.add(qkey)
                by_quarter.setdefault(qkey, []).append(tracker)

    return TrackerCoverage(
        by_week={k: tuple(v) for k, v in by_week.items()},
        by_month={k: tuple(v) for k, v in by_month.items()},
        by_quarter={k: tuple(v) for k, v in by_quarter.items()},
    )


def find_date_gaps(trackers: Sequence[Tracker]) -> tuple[DateGap, ...]:
    """Gaps between consecutive trackers in start order (sort + scan)."""
    if len(trackers) <= 1:
        return ()
    ordered = sorted(trackers, key=lambda t: (t.start_date, t.end_date, t.tracker_id))
    gaps: list[DateGap] = []
    for current, following in zip(ordered, ordered[1:]):
        gap_start = current.end_date + dt.timedelta(days=1)
        gap_end = following.start_date - dt.timedelta(days=1)
        if gap_start <= gap_end:
            gaps.append(
                DateGap(
                    start=gap_start,
                    end=gap_end,
                    duration=inclusive_days(gap_start, gap_end),
                    before_tracker=current.tracker_id,
                    after_tracker=following.tracker_id,
                )
            )
    return tuple(gaps)


def find_date_overlaps(trackers: Sequence[Tracker]) -> tuple[DateOverlap, ...]:
    """Pairwise overlaps. O(n^2): keep inputs to a visible window for large boards."""
    overlaps: list[DateOverlap] = []
    for i, first in enumerate(trackers):
        for second in trackers[i + 1 :]:
            span = overlap_span(first.start_date, first.end_date, second.start_date, second.end_date)
            if span is None:
                continue
            overlaps.append(
                DateOverlap(
                    trackers=(first, second),
                    start=span[0],
                    end=span[1],
                    duration=inclusive_days(span[0], span[1]),
                )
            )
    return tuple(overlaps)


def working_days(start: dt.date, end: dt.date) -> int:
    day = as_date(start)
    last = as_date(end)
    count = 0
    while day <= last:
        if not is_weekend(day):
            count += 1
        day += dt.timedelta(days=1)
    return count


def date_range_stats(ranges: Iterable[DateRangeInfo]) -> RangeStats:
    items = list(ranges)
    if not items:
        return RangeStats()
    durations = [r.duration for r in items]
    total = sum(durations)
    return RangeStats(
        total_days=total,
        average_duration=total / len(items),
        shortest_duration=min(durations),
        longest_duration=max(durations),
        working_days_total=sum(working_days(r.start, r.end) for r in items),
    )


def recommend_view_mode(trackers: Sequence[Tracker]) -> ViewModeRecommendation:
    scores = {ViewMode.WEEKLY: 0, ViewMode.MONTHLY: 0, ViewMode.QUARTERLY: 0}
    if not trackers:
        return ViewModeRecommendation(
            recommended=ViewMode.MONTHLY,
            reasons=("No trackers to analyze",),
            scores=scores,
        )

    reasons: list[str] = []
    span_days = inclusive_days(min(t.start_date for t in trackers), max(t.end_date for t in trackers))
    if span_days <= 30:
        scores[ViewMode.WEEKLY] += 3
        reasons.append("Short total span favors weekly view")
    elif span_days <= 180:
        scores[ViewMode.MONTHLY] += 3
        reasons.append("Medium total span favors monthly view")
    else:
        scores[ViewMode.QUARTERLY] += 3
        reasons.append("Long total span favors quarterly view")

    count = len(trackers)
    if count <= 5:
        scores[ViewMode.WEEKLY] += 2
    elif count <= 20:
        scores[ViewMode.MONTHLY] += 2
    else:
        scores[ViewMode.QUARTERLY] += 2

    average = sum((t.end_date - t.start_date).days for t in trackers) / count
    if average <= 7:
        scores[ViewMode.WEEKLY] += 2
    elif average <= 60:
        scores[ViewMode.MONTHLY] += 2
    else:
        scores[ViewMode.QUARTERLY] += 2

    # max() keeps the first of equal scores, so ties favor the finer view.
    recommended = max(scores, key=lambda mode: scores[mode])
    return ViewModeRecommendation(recommended=recommended, reasons=tuple(reasons), scores=dict(scores))


def _iter_steps(start: dt.date, end: dt.date, step: Callable[[dt.date], dt.date]) -> Iterable[dt.date]:
    current = start
    while current <= end:
        yield current
        current = step(current)
