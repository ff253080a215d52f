from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from .dates import ViewMode, ranges_overlap
from .schema import Tracker

LANE_HEIGHTS: dict[ViewMode, int] = {
    ViewMode.WEEKLY: 48,
    ViewMode.MONTHLY: 36,
    ViewMode.QUARTERLY: 24,
}


@dataclass(frozen=True)
class TrackerLane:
    index: int
    trackers: tuple[Tracker, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.trackers


@dataclass(frozen=True)
class LaneMap:
    """Derived tracker-id -> lane index mapping plus a per-lane grouped view."""

    assignments: Mapping[str, int] = field(default_factory=dict)
    lanes: tuple[TrackerLane, ...] = ()

    def __post_init__(self) -> None:
        for tracker_id, lane in self.assignments.items():
            if lane < 0:
                raise ValueError(f"lane index for `{tracker_id}` must be >= 0")

    @property
    def lane_count(self) -> int:
        return len(self.lanes)

    def lane_of(self, tracker_id: str) -> int | None:
        return self.assignments.get(tracker_id)

    def members(self, lane: int) -> tuple[Tracker, ...]:
        if 0 <= lane < len(self.lanes):
            return self.lanes[lane].trackers
        return ()

    def __contains__(self, tracker_id: object) -> bool:
        return tracker_id in self.assignments


@dataclass(frozen=True)
class LaneReassignment:
    lane_map: LaneMap
    requested_lane: int
    assigned_lane: int
    reason: str

    @property
    def honored(self) -> bool:
        return self.requested_lane == self.assigned_lane


@dataclass(frozen=True)
class LaneConsistencyReport:
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


def packing_order(trackers: Iterable[Tracker]) -> list[Tracker]:
    """Start ascending, then shorter first for tighter packing; id keeps ties stable."""
    return sorted(trackers, key=lambda t: (t.start_date, t.end_date - t.start_date, t.tracker_id))


def can_fit_in_lane(tracker: Tracker, lane: Sequence[Tracker]) -> bool:
    return not any(
        ranges_overlap(tracker.start_date, tracker.end_date, other.start_date, other.end_date)
        for other in lane
        if other.tracker_id != tracker.tracker_id
    )


def first_free_lane(tracker: Tracker, lanes: Sequence[Sequence[Tracker]]) -> int:
    for index, lane in enumerate(lanes):
        if can_fit_in_lane(tracker, lane):
            return index
    return len(lanes)


def assign_lanes(trackers: Iterable[Tracker]) -> LaneMap:
    """Greedy interval-graph coloring over the authoritative tracker list."""
    lanes: list[list[Tracker]] = []
    assignments: dict[str, int] = {}
    for tracker in packing_order(trackers):
        index = first_free_lane(tracker, lanes)
        if index == len(lanes):
            lanes.append([])
        lanes[index].append(tracker)
        assignments[tracker.tracker_id] = index
    return build_lane_map(assignments, _flatten(lanes))


def build_lane_map(assignments: Mapping[str, int], trackers: Iterable[Tracker]) -> LaneMap:
    """Group ``trackers`` by ``assignments``; unassigned trackers are left out of the grouped view."""
    grouped: dict[int, list[Tracker]] = {}
    for tracker in trackers:
        lane = assignments.get(tracker.tracker_id)
        if lane is None:
            continue
        grouped.setdefault(lane, []).append(tracker)
    max_lane = max(assignments.values(), default=-1)
    lanes = tuple(
        TrackerLane(
            index=index,
            trackers=tuple(sorted(grouped.get(index, []), key=lambda t: (t.start_date, t.tracker_id))),
        )
        for index in range(max_lane + 1)
    )
    return LaneMap(assignments=dict(assignments), lanes=lanes)


def compact_lanes(lane_map: LaneMap) -> LaneMap:
    used = sorted(set(lane_map.assignments.values()))
    renumber = {old: new for new, old in enumerate(used)}
    assignments = {tracker_id: renumber[lane] for tracker_id, lane in lane_map.assignments.items()}
    return build_lane_map(assignments, _flatten(lane.trackers for lane in lane_map.lanes))


def reassign_tracker_lane(
    tracker_id: str,
    lane: int,
    lane_map: LaneMap,
    trackers: Sequence[Tracker],
) -> LaneReassignment:
    """Force ``tracker_id`` into ``lane``, falling back to the first free lane when it does not fit."""
    if lane < 0:
        raise ValueError("lane must be >= 0")
    lookup = {t.tracker_id: t for t in trackers}
    tracker = lookup.get(tracker_id)
    if tracker is None:
        return LaneReassignment(
            lane_map=lane_map,
            requested_lane=lane,
            assigned_lane=lane_map.lane_of(tracker_id) if tracker_id in lane_map else -1,
            reason=f"Tracker `{tracker_id}` is not on the board",
        )

    remaining = {tid: idx for tid, idx in lane_map.assignments.items() if tid != tracker_id}
    occupants = [lookup[tid] for tid, idx in remaining.items() if idx == lane and tid in lookup]
    if can_fit_in_lane(tracker, occupants):
        assigned = lane
        reason = f"Placed in requested lane {lane}"
    else:
        lanes: list[list[Tracker]] = []
        for tid, idx in sorted(remaining.items(), key=lambda item: item[1]):
            if tid not in lookup:
                continue
            while len(lanes) <= idx:
                lanes.append([])
            lanes[idx].append(lookup[tid])
        assigned = first_free_lane(tracker, lanes)
        blockers = ", ".join(
            t.tracker_id
            for t in occupants
            if ranges_overlap(tracker.start_date, tracker.end_date, t.start_date, t.end_date)
        )
        reason = f"Lane {lane} overlaps {blockers}; moved to lane {assigned}"

    remaining[tracker_id] = assigned
    return LaneReassignment(
        lane_map=build_lane_map(remaining, trackers),
        requested_lane=lane,
        assigned_lane=assigned,
        reason=reason,
    )


def optimal_lane_count(trackers: Iterable[Tracker]) -> int:
    return assign_lanes(trackers).lane_count


def validate_lane_assignments(lane_map: LaneMap, trackers: Sequence[Tracker]) -> LaneConsistencyReport:
    errors: list[str] = []
    for tracker in trackers:
        if tracker.tracker_id not in lane_map:
            errors.append(f"Tracker `{tracker.tracker_id}` is missing a lane assignment")

    grouped: dict[int, list[Tracker]] = {}
    for tracker in trackers:
        lane = lane_map.lane_of(tracker.tracker_id)
        if lane is not None:
            grouped.setdefault(lane, []).append(tracker)
    for lane in sorted(grouped):
        members = grouped[lane]
        for i, first in enumerate(members):
            for second in members[i + 1 :]:
                if ranges_overlap(first.start_date, first.end_date, second.start_date, second.end_date):
                    errors.append(
                        f"Trackers `{first.tracker_id}` and `{second.tracker_id}` overlap in lane {lane}"
                    )
    return LaneConsistencyReport(errors=tuple(errors))


def lane_height(view_mode: ViewMode) -> int:
    return LANE_HEIGHTS[ViewMode(view_mode)]


def _flatten(groups: Iterable[Iterable[Tracker]]) -> list[Tracker]:
    return [tracker for group in groups for tracker in group]
