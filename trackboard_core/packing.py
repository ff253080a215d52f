from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Sequence

from .dates import ranges_overlap
from .lanes import LaneMap, assign_lanes, build_lane_map, can_fit_in_lane, compact_lanes, first_free_lane
from .schema import Tracker

PackingStrategy = Literal["start", "duration", "end", "priority"]
PACKING_STRATEGIES: tuple[PackingStrategy, ...] = ("start", "duration", "end", "priority")

_STRATEGY_KEYS: dict[str, Callable[[Tracker], tuple]] = {
    "start": lambda t: (t.start_date, t.tracker_id),
    "duration": lambda t: (t.duration_days, t.start_date, t.tracker_id),
    "end": lambda t: (t.end_date, t.start_date, t.tracker_id),
    "priority": lambda t: (-t.priority.rank, t.start_date, t.tracker_id),
}


@dataclass(frozen=True)
class OptimizationConfig:
    prioritize_compactness: bool = True
    minimize_gaps: bool = True
    balance_lanes: bool = True
    max_passes: int = 3
    target_efficiency: float = 0.8

    def __post_init__(self) -> None:
        if self.max_passes < 1:
            raise ValueError("max_passes must be >= 1")
        if not 0.0 < self.target_efficiency <= 1.0:
            raise ValueError("target_efficiency must be in (0, 1]")


DEFAULT_OPTIMIZATION_CONFIG = OptimizationConfig()


@dataclass(frozen=True)
class PackingMetrics:
    """How densely a lane map fills the board.

    ``packing_efficiency`` is occupied tracker-days over the board span times
    the lane count. ``balance_score`` is 1 minus the coefficient of variation
    of trackers per lane, floored at 0.
    """

    lane_count: int
    packing_efficiency: float
    average_gap_days: float
    wasted_days: int
    balance_score: float


@dataclass(frozen=True)
class PackingImprovements:
    lanes_reduced: int = 0
    spacing_improved: int = 0
    conflicts_resolved: int = 0

    def __add__(self, other: PackingImprovements) -> PackingImprovements:
        return PackingImprovements(
            lanes_reduced=self.lanes_reduced + other.lanes_reduced,
            spacing_improved=self.spacing_improved + other.spacing_improved,
            conflicts_resolved=self.conflicts_resolved + other.conflicts_resolved,
        )


@dataclass(frozen=True)
class OptimizationResult:
    original: LaneMap
    optimized: LaneMap
    improvements: PackingImprovements
    metrics: PackingMetrics
    passes: int


@dataclass(frozen=True)
class LaneCountAdvice:
    lane_count: int
    score: float
    reason: str


@dataclass(frozen=True)
class PackingRecommendation:
    kind: Literal["lanes", "gaps", "balance", "efficiency"]
    severity: Literal["low", "medium", "high"]
    message: str
    impact: str


def packing_metrics(trackers: Sequence[Tracker], lane_map: LaneMap) -> PackingMetrics:
    placed = [t for t in trackers if t.tracker_id in lane_map]
    if not placed:
        return PackingMetrics(
            lane_count=0,
            packing_efficiency=0.0,
            average_gap_days=0.0,
            wasted_days=0,
            balance_score=0.0,
        )

    lane_count = max(lane_map.lane_of(t.tracker_id) for t in placed) + 1
    span_days = (max(t.end_date for t in placed) - min(t.start_date for t in placed)).days + 1
    available = span_days * lane_count
    occupied = sum(t.duration_days for t in placed)

    gaps: list[int] = []
    groups = _group(placed, lane_map)
    for members in groups.values():
        ordered = sorted(members, key=lambda t: (t.start_date, t.tracker_id))
        for current, following in zip(ordered, ordered[1:]):
            gap = (following.start_date - current.end_date).days - 1
            if gap > 0:
                gaps.append(gap)

    counts = [len(groups.get(lane, ())) for lane in range(lane_count)]
    mean = len(placed) / lane_count
    deviation = math.sqrt(sum((count - mean) ** 2 for count in counts) / lane_count)
    return PackingMetrics(
        lane_count=lane_count,
        packing_efficiency=occupied / available,
        average_gap_days=sum(gaps) / len(gaps) if gaps else 0.0,
        wasted_days=available - occupied,
        balance_score=max(0.0, 1.0 - deviation / mean),
    )


def repack(trackers: Iterable[Tracker], strategy: PackingStrategy = "start") -> LaneMap:
    """First-fit packing in the order ``strategy`` names."""
    if strategy not in _STRATEGY_KEYS:
        raise ValueError(f"unknown packing strategy: {strategy}")
    ordered = sorted(trackers, key=_STRATEGY_KEYS[strategy])
    lanes: list[list[Tracker]] = []
    assignments: dict[str, int] = {}
    for tracker in ordered:
        index = first_free_lane(tracker, lanes)
        if index == len(lanes):
            lanes.append([])
        lanes[index].append(tracker)
        assignments[tracker.tracker_id] = index
    return build_lane_map(assignments, ordered)


def compact_with_strategies(trackers: Sequence[Tracker], lane_map: LaneMap) -> tuple[LaneMap, int]:
    best = lane_map
    for strategy in PACKING_STRATEGIES:
        candidate = repack(trackers, strategy)
        if candidate.lane_count < best.lane_count:
            best = candidate
    return best, lane_map.lane_count - best.lane_count


def minimize_gaps(trackers: Sequence[Tracker], lane_map: LaneMap) -> tuple[LaneMap, int]:
    """Pull trackers from higher lanes into same-lane gaps that fully contain them."""
    assignments = {t.tracker_id: lane_map.lane_of(t.tracker_id) for t in trackers if t.tracker_id in lane_map}
    moved = 0
    for lane in sorted(set(assignments.values())):
        members = sorted(
            (t for t in trackers if assignments.get(t.tracker_id) == lane),
            key=lambda t: (t.start_date, t.tracker_id),
        )
        for current, following in zip(members, members[1:]):
            if (following.start_date - current.end_date).days - 1 <= 0:
                continue
            candidates = sorted(
                (
                    t
                    for t in trackers
                    if assignments.get(t.tracker_id, -1) > lane
                    and t.start_date > current.end_date
                    and t.end_date < following.start_date
                ),
                key=lambda t: (t.start_date, t.tracker_id),
            )
            if candidates:
                assignments[candidates[0].tracker_id] = lane
                moved += 1
    return build_lane_map(assignments, trackers), moved


def balance_lanes(trackers: Sequence[Tracker], lane_map: LaneMap) -> tuple[LaneMap, int]:
    """Move trackers out of lanes holding over 1.5x the mean into lanes under 0.5x."""
    assignments = {t.tracker_id: lane_map.lane_of(t.tracker_id) for t in trackers if t.tracker_id in lane_map}
    if not assignments:
        return lane_map, 0
    lane_count = max(assignments.values()) + 1
    groups: dict[int, list[Tracker]] = {lane: [] for lane in range(lane_count)}
    for tracker in trackers:
        if tracker.tracker_id in assignments:
            groups[assignments[tracker.tracker_id]].append(tracker)
    mean = len(assignments) / lane_count

    moved = 0
    overloaded = [lane for lane in range(lane_count) if len(groups[lane]) > mean * 1.5]
    underloaded = [lane for lane in range(lane_count) if len(groups[lane]) < mean * 0.5]
    for source in overloaded:
        for target in underloaded:
            movable = [t for t in groups[source] if can_fit_in_lane(t, groups[target])]
            if not movable:
                continue
            tracker = min(movable, key=lambda t: (t.start_date, t.tracker_id))
            groups[source].remove(tracker)
            groups[target].append(tracker)
            assignments[tracker.tracker_id] = target
            moved += 1
            if len(groups[source]) <= mean * 1.2:
                break
    return build_lane_map(assignments, trackers), moved


def optimization_pass(
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    config: OptimizationConfig,
    pass_number: int,
) -> tuple[LaneMap, PackingImprovements]:
    """Passes rotate compaction, gap filling and balancing."""
    step = pass_number % 3
    if step == 0 and config.prioritize_compactness:
        packed, reduced = compact_with_strategies(trackers, lane_map)
        return packed, PackingImprovements(lanes_reduced=reduced)
    if step == 1 and config.minimize_gaps:
        filled, moved = minimize_gaps(trackers, lane_map)
        return filled, PackingImprovements(spacing_improved=moved)
    if step == 2 and config.balance_lanes:
        balanced, moved = balance_lanes(trackers, lane_map)
        return balanced, PackingImprovements(spacing_improved=moved)
    return lane_map, PackingImprovements()


def optimize_lanes(
    trackers: Sequence[Tracker],
    lane_map: LaneMap | None = None,
    config: OptimizationConfig = DEFAULT_OPTIMIZATION_CONFIG,
) -> OptimizationResult:
    """Run optimization passes until the target efficiency or ``max_passes``.

    The input map is not modified. Empty lanes left behind by moves are
    compacted away before metrics are taken.
    """
    original = lane_map if lane_map is not None else assign_lanes(trackers)
    working = original
    improvements = PackingImprovements()
    passes = 0
    for pass_number in range(config.max_passes):
        working, gained = optimization_pass(trackers, working, config, pass_number)
        improvements += gained
        passes += 1
        if packing_metrics(trackers, working).packing_efficiency >= config.target_efficiency:
            break

    working = compact_lanes(working)
    improvements = PackingImprovements(
        lanes_reduced=max(0, original.lane_count - working.lane_count),
        spacing_improved=improvements.spacing_improved,
        conflicts_resolved=max(0, count_lane_conflicts(trackers, original) - count_lane_conflicts(trackers, working)),
    )
    return OptimizationResult(
        original=original,
        optimized=working,
        improvements=improvements,
        metrics=packing_metrics(trackers, working),
        passes=passes,
    )


def count_lane_conflicts(trackers: Sequence[Tracker], lane_map: LaneMap) -> int:
    conflicts = 0
    for members in _group(trackers, lane_map).values():
        for i, first in enumerate(members):
            for second in members[i + 1 :]:
                if ranges_overlap(first.start_date, first.end_date, second.start_date, second.end_date):
                    conflicts += 1
    return conflicts


def simulate_lane_limit(trackers: Iterable[Tracker], max_lanes: int) -> LaneMap:
    """Pack into at most ``max_lanes``; a tracker that fits nowhere joins the lane that frees up first.

    The result may hold same-lane overlaps when ``max_lanes`` is too small.
    """
    if max_lanes < 1:
        raise ValueError("max_lanes must be >= 1")
    ordered = sorted(trackers, key=_STRATEGY_KEYS["start"])
    lanes: list[list[Tracker]] = [[] for _ in range(max_lanes)]
    assignments: dict[str, int] = {}
    for tracker in ordered:
        index = next((i for i, lane in enumerate(lanes) if can_fit_in_lane(tracker, lane)), None)
        if index is None:
            index = min(range(max_lanes), key=lambda i: (max(t.end_date for t in lanes[i]), i))
        lanes[index].append(tracker)
        assignments[tracker.tracker_id] = index
    return build_lane_map(assignments, ordered)


def recommend_lane_count(trackers: Sequence[Tracker], max_acceptable_lanes: int = 20) -> LaneCountAdvice:
    """Fewest overlap-free lanes within ``max_acceptable_lanes``, scored by efficiency plus compactness."""
    if not trackers:
        return LaneCountAdvice(lane_count=0, score=0.0, reason="No trackers to place")
    limit = min(max_acceptable_lanes, len(trackers))
    for lane_count in range(1, limit + 1):
        simulated = simulate_lane_limit(trackers, lane_count)
        if count_lane_conflicts(trackers, simulated):
            continue
        efficiency = packing_metrics(trackers, simulated).packing_efficiency
        return LaneCountAdvice(
            lane_count=lane_count,
            score=efficiency + 0.1 / lane_count,
            reason=f"Best balance of packing efficiency ({efficiency * 100:.1f}%) and compactness",
        )
    simulated = simulate_lane_limit(trackers, limit)
    return LaneCountAdvice(
        lane_count=limit,
        score=packing_metrics(trackers, simulated).packing_efficiency + 0.1 / limit,
        reason=f"{count_lane_conflicts(trackers, simulated)} overlaps remain within {limit} lanes",
    )


def optimization_recommendations(result: OptimizationResult) -> tuple[PackingRecommendation, ...]:
    metrics = result.metrics
    recommendations: list[PackingRecommendation] = []
    if result.improvements.lanes_reduced > 0:
        recommendations.append(
            PackingRecommendation(
                kind="lanes",
                severity="medium",
                message=f"Reduced {result.improvements.lanes_reduced} lanes through optimization",
                impact="Improved visual compactness and reduced scrolling",
            )
        )
    if metrics.average_gap_days > 5:
        recommendations.append(
            PackingRecommendation(
                kind="gaps",
                severity="medium",
                message=f"Large gaps detected (average {metrics.average_gap_days:.1f} days)",
                impact="Consider redistributing trackers to minimize empty space",
            )
        )
    if metrics.lane_count and metrics.balance_score < 0.6:
        recommendations.append(
            PackingRecommendation(
                kind="balance",
                severity="low",
                message="Lane distribution is uneven",
                impact="Rebalancing lanes could improve visual organization",
            )
        )
    if metrics.lane_count and metrics.packing_efficiency < 0.5:
        recommendations.append(
            PackingRecommendation(
                kind="efficiency",
                severity="high",
                message=f"Low packing efficiency ({metrics.packing_efficiency * 100:.1f}%)",
                impact="Consider consolidating or rescheduling trackers",
            )
        )
    return tuple(recommendations)


def _group(trackers: Iterable[Tracker], lane_map: LaneMap) -> dict[int, list[Tracker]]:
    groups: dict[int, list[Tracker]] = {}
    for tracker in trackers:
        lane = lane_map.lane_of(tracker.tracker_id)
        if lane is not None:
            groups.setdefault(lane, []).append(tracker)
    return groups
