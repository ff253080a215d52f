"""Placement collision detection and remediation.

Reports are computed, never applied: callers decide whether a collision
blocks (validation), colors a drag preview, or feeds the integrity check.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from .dates import inclusive_days, overlap_span
from .lanes import LaneMap
from .schema import Tracker

MINOR_RATIO = 0.2
MODERATE_RATIO = 0.5
ALL_LANES_CEILING = 20


class Severity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.MINOR: 0, Severity.MODERATE: 1, Severity.MAJOR: 2}


class LaneScope(str, Enum):
    SAME_LANE = "same_lane"
    ADJACENT = "adjacent"
    ALL = "all"


@dataclass(frozen=True)
class CollisionOptions:
    scope: LaneScope = LaneScope.SAME_LANE
    max_lanes_to_check: int = 10
    allow_partial_overlaps: bool = False
    partial_overlap_days: int = 1
    buffer_days: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "scope", LaneScope(self.scope))
        if self.max_lanes_to_check < 1:
            raise ValueError("max_lanes_to_check must be >= 1")
        if self.partial_overlap_days < 0:
            raise ValueError("partial_overlap_days must be >= 0")
        if self.buffer_days < 0:
            raise ValueError("buffer_days must be >= 0")


DEFAULT_COLLISION_OPTIONS = CollisionOptions()


@dataclass(frozen=True)
class Candidate:
    start_date: dt.date
    end_date: dt.date
    tracker_id: str | None = None
    title: str = ""

    @classmethod
    def of(cls, tracker: Tracker) -> "Candidate":
        return cls(
            start_date=tracker.start_date,
            end_date=tracker.end_date,
            tracker_id=tracker.tracker_id,
            title=tracker.title,
        )


@dataclass(frozen=True)
class Collision:
    tracker: Tracker
    lane: int
    overlap_start: dt.date
    overlap_end: dt.date
    overlap_days: int
    severity: Severity


@dataclass(frozen=True)
class AlternativeRange:
    start_date: dt.date
    end_date: dt.date
    reason: str


@dataclass(frozen=True)
class CollisionReport:
    collisions: tuple[Collision, ...] = ()
    suggested_lane: int | None = None
    alternative: AlternativeRange | None = None

    @property
    def has_collision(self) -> bool:
        return bool(self.collisions)

    @property
    def worst_severity(self) -> Severity | None:
        if not self.collisions:
            return None
        return max((c.severity for c in self.collisions), key=lambda s: s.rank)

    def by_severity(self, severity: Severity) -> tuple[Collision, ...]:
        return tuple(c for c in self.collisions if c.severity is severity)


@dataclass(frozen=True)
class Placement:
    lane: int
    start_date: dt.date
    end_date: dt.date
    adjustment_reason: str | None = None


@dataclass(frozen=True)
class IntegrityIssue:
    kind: str
    tracker_id: str
    message: str
    is_error: bool


@dataclass(frozen=True)
class LaneSuggestion:
    tracker_id: str
    current_lane: int
    suggested_lane: int
    reason: str


@dataclass(frozen=True)
class IntegrityReport:
    issues: tuple[IntegrityIssue, ...] = ()
    suggestions: tuple[LaneSuggestion, ...] = ()

    @property
    def ok(self) -> bool:
        return not any(issue.is_error for issue in self.issues)

    @property
    def errors(self) -> tuple[IntegrityIssue, ...]:
        return tuple(issue for issue in self.issues if issue.is_error)

    @property
    def warnings(self) -> tuple[IntegrityIssue, ...]:
        return tuple(issue for issue in self.issues if not issue.is_error)


def classify_severity(overlap_days: int, candidate_days: int) -> Severity:
    ratio = overlap_days / max(1, candidate_days)
    if ratio < MINOR_RATIO:
        return Severity.MINOR
    if ratio < MODERATE_RATIO:
        return Severity.MODERATE
    return Severity.MAJOR


def lanes_to_check(target_lane: int, options: CollisionOptions) -> list[int]:
    if options.scope is LaneScope.SAME_LANE:
        return [target_lane]
    if options.scope is LaneScope.ADJACENT:
        return [lane for lane in (target_lane - 1, target_lane, target_lane + 1) if lane >= 0]
    return list(range(min(options.max_lanes_to_check, ALL_LANES_CEILING)))


def detect_collisions(
    candidate: Candidate | Tracker,
    target_lane: int,
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    options: CollisionOptions = DEFAULT_COLLISION_OPTIONS,
) -> CollisionReport:
    subject = candidate if isinstance(candidate, Candidate) else Candidate.of(candidate)
    collisions = _scan(subject, target_lane, trackers, lane_map, options)
    if not collisions:
        return CollisionReport()

    suggested = find_available_lane(subject, trackers, lane_map, max_lanes=options.max_lanes_to_check)
    alternative = None
    if suggested is None:
        alternative = find_alternative_dates(subject, target_lane, trackers, lane_map)
    return CollisionReport(collisions=tuple(collisions), suggested_lane=suggested, alternative=alternative)


def find_available_lane(
    candidate: Candidate | Tracker,
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    *,
    max_lanes: int = ALL_LANES_CEILING,
) -> int | None:
    """Lowest lane below ``max_lanes`` where the unbuffered range has no same-lane collision."""
    subject = candidate if isinstance(candidate, Candidate) else Candidate.of(candidate)
    for lane in range(max_lanes):
        if not _scan(subject, lane, trackers, lane_map, DEFAULT_COLLISION_OPTIONS):
            return lane
    return None


def find_alternative_dates(
    candidate: Candidate | Tracker,
    target_lane: int,
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
) -> AlternativeRange | None:
    """Duration-preserving shift into the target lane: before, between, or after its occupants."""
    subject = candidate if isinstance(candidate, Candidate) else Candidate.of(candidate)
    length = (subject.end_date - subject.start_date).days
    occupants = sorted(
        (
            t
            for t in trackers
            if t.tracker_id != subject.tracker_id and lane_map.lane_of(t.tracker_id) == target_lane
        ),
        key=lambda t: (t.start_date, t.tracker_id),
    )
    if not occupants:
        return None

    first = occupants[0]
    if (first.start_date - subject.start_date).days > length + 1:
        new_end = first.start_date - dt.timedelta(days=1)
        return AlternativeRange(
            start_date=new_end - dt.timedelta(days=length),
            end_date=new_end,
            reason=f"Moved to fit before {first.title}",
        )

    for current, following in zip(occupants, occupants[1:]):
        gap_start = current.end_date + dt.timedelta(days=1)
        gap_end = following.start_date - dt.timedelta(days=1)
        if gap_start <= gap_end and inclusive_days(gap_start, gap_end) >= length + 1:
            return AlternativeRange(
                start_date=gap_start,
                end_date=gap_start + dt.timedelta(days=length),
                reason=f"Moved to gap between {current.title} and {following.title}",
            )

    last_end = max(t.end_date for t in occupants)
    last = next(t for t in reversed(occupants) if t.end_date == last_end)
    new_start = last_end + dt.timedelta(days=1)
    return AlternativeRange(
        start_date=new_start,
        end_date=new_start + dt.timedelta(days=length),
        reason=f"Moved to fit after {last.title}",
    )


def collision_summary(report: CollisionReport) -> str:
    if not report.has_collision:
        return "No conflicts detected"
    parts: list[str] = []
    for severity in (Severity.MAJOR, Severity.MODERATE, Severity.MINOR):
        count = len(report.by_severity(severity))
        if count:
            parts.append(f"{count} {severity.value} conflict{'s' if count > 1 else ''}")
    return ", ".join(parts)


def can_move_tracker_to(
    tracker: Tracker,
    new_start: dt.date,
    new_end: dt.date,
    new_lane: int,
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    *,
    strict: bool = False,
) -> bool:
    options = CollisionOptions(allow_partial_overlaps=not strict, buffer_days=1 if strict else 0)
    subject = Candidate(start_date=new_start, end_date=new_end, tracker_id=tracker.tracker_id, title=tracker.title)
    return not _scan(subject, new_lane, trackers, lane_map, options)


def optimal_placement(
    candidate: Candidate | Tracker,
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    *,
    preferred_lane: int | None = None,
) -> Placement:
    subject = candidate if isinstance(candidate, Candidate) else Candidate.of(candidate)
    if preferred_lane is not None:
        report = detect_collisions(subject, preferred_lane, trackers, lane_map)
        if not report.has_collision:
            return Placement(lane=preferred_lane, start_date=subject.start_date, end_date=subject.end_date)
        if report.alternative is not None:
            return Placement(
                lane=preferred_lane,
                start_date=report.alternative.start_date,
                end_date=report.alternative.end_date,
                adjustment_reason=report.alternative.reason,
            )

    lane = find_available_lane(subject, trackers, lane_map)
    if lane is not None:
        reason = f"Moved to lane {lane} due to conflicts" if preferred_lane is not None else None
        return Placement(lane=lane, start_date=subject.start_date, end_date=subject.end_date, adjustment_reason=reason)

    fallback = find_alternative_dates(subject, 0, trackers, lane_map)
    if fallback is not None:
        return Placement(
            lane=0,
            start_date=fallback.start_date,
            end_date=fallback.end_date,
            adjustment_reason=fallback.reason,
        )
    return Placement(
        lane=max(lane_map.assignments.values(), default=-1) + 1,
        start_date=subject.start_date,
        end_date=subject.end_date,
        adjustment_reason="Added new lane to avoid all conflicts",
    )


def check_timeline_integrity(trackers: Sequence[Tracker], lane_map: LaneMap) -> IntegrityReport:
    """Re-run the same-lane predicate over every stored assignment."""
    issues: list[IntegrityIssue] = []
    suggestions: list[LaneSuggestion] = []
    for tracker in trackers:
        if tracker.tracker_id not in lane_map:
            issues.append(
                IntegrityIssue(
                    kind="missing_assignment",
                    tracker_id=tracker.tracker_id,
                    message=f'Tracker "{tracker.title}" has no lane assignment',
                    is_error=True,
                )
            )

    for tracker in trackers:
        lane = lane_map.lane_of(tracker.tracker_id)
        if lane is None:
            continue
        report = detect_collisions(tracker, lane, trackers, lane_map)
        if not report.has_collision:
            continue
        majors = report.by_severity(Severity.MAJOR)
        if majors:
            issues.append(
                IntegrityIssue(
                    kind="overlap",
                    tracker_id=tracker.tracker_id,
                    message=f'Tracker "{tracker.title}" has major overlaps with {len(majors)} other tracker(s)',
                    is_error=True,
                )
            )
        else:
            issues.append(
                IntegrityIssue(
                    kind="overlap",
                    tracker_id=tracker.tracker_id,
                    message=f'Tracker "{tracker.title}" has minor overlaps',
                    is_error=False,
                )
            )
        if report.suggested_lane is not None:
            suggestions.append(
                LaneSuggestion(
                    tracker_id=tracker.tracker_id,
                    current_lane=lane,
                    suggested_lane=report.suggested_lane,
                    reason=f"Move to lane {report.suggested_lane} to resolve conflicts",
                )
            )
    return IntegrityReport(issues=tuple(issues), suggestions=tuple(suggestions))


def with_options(options: CollisionOptions, **changes: object) -> CollisionOptions:
    return dataclasses.replace(options, **changes)


def _scan(
    subject: Candidate,
    target_lane: int,
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    options: CollisionOptions,
) -> list[Collision]:
    buffer = dt.timedelta(days=options.buffer_days)
    start = subject.start_date - buffer
    end = subject.end_date + buffer
    candidate_days = inclusive_days(subject.start_date, subject.end_date)

    found: list[Collision] = []
    for lane in lanes_to_check(target_lane, options):
        for tracker in trackers:
            if tracker.tracker_id == subject.tracker_id or lane_map.lane_of(tracker.tracker_id) != lane:
                continue
            span = overlap_span(start, end, tracker.start_date, tracker.end_date)
            if span is None:
                continue
            overlap_days = inclusive_days(span[0], span[1])
            if options.allow_partial_overlaps and overlap_days <= options.partial_overlap_days:
                continue
            found.append(
                Collision(
                    tracker=tracker,
                    lane=lane,
                    overlap_start=span[0],
                    overlap_end=span[1],
                    overlap_days=overlap_days,
                    severity=classify_severity(overlap_days, candidate_days),
                )
            )
    return found
