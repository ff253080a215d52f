"""Scheduling engine for date-ranged trackers on a multi-lane timeline board."""

from .collisions import (
    AlternativeRange,
    Candidate,
    Collision,
    CollisionOptions,
    CollisionReport,
    IntegrityReport,
    LaneScope,
    Placement,
    Severity,
    can_move_tracker_to,
    check_timeline_integrity,
    collision_summary,
    detect_collisions,
    find_alternative_dates,
    find_available_lane,
    optimal_placement,
)
from .config import BackoffConfig, BoardConfig, ConfigError, DragConfig, board_config_from_dict, load_board_config
from .dates import (
    DateRangeInfo,
    TrackerDateMetrics,
    ViewMode,
    extended_range,
    find_date_gaps,
    find_date_overlaps,
    inclusive_days,
    next_range,
    overlap_span,
    previous_range,
    ranges_overlap,
    recommend_view_mode,
    tracker_coverage,
    tracker_date_metrics,
    view_mode_range,
    visible_range,
    working_days,
)
from .lanes import (
    LaneMap,
    LaneReassignment,
    TrackerLane,
    assign_lanes,
    compact_lanes,
    lane_height,
    optimal_lane_count,
    reassign_tracker_lane,
    validate_lane_assignments,
)
from .packing import (
    OptimizationConfig,
    OptimizationResult,
    PackingMetrics,
    optimization_recommendations,
    optimize_lanes,
    packing_metrics,
    recommend_lane_count,
    simulate_lane_limit,
)
from .schema import (
    TRACKER_PRIORITIES,
    TRACKER_STATUSES,
    TRACKER_TYPES,
    Tracker,
    TrackerPriority,
    TrackerStatus,
    TrackerType,
    load_trackers,
    tracker_from_dict,
    tracker_to_dict,
)
from .snapping import (
    RangeSnapResult,
    SnapConfig,
    SnapConstraints,
    SnapResult,
    SnapUnit,
    snap_config_for_view_mode,
    snap_date,
    snap_pixel_to_date,
    snap_range,
)
from .validation import (
    BulkOperation,
    TrackerValidator,
    ValidationConfig,
    ValidationResult,
    format_errors,
    format_warnings,
    summarize,
    validate_drag,
    validate_tracker,
)

__all__ = [
    "AlternativeRange",
    "BackoffConfig",
    "BoardConfig",
    "BulkOperation",
    "Candidate",
    "Collision",
    "CollisionOptions",
    "CollisionReport",
    "ConfigError",
    "DateRangeInfo",
    "DragConfig",
    "IntegrityReport",
    "LaneMap",
    "LaneReassignment",
    "LaneScope",
    "OptimizationConfig",
    "OptimizationResult",
    "PackingMetrics",
    "Placement",
    "RangeSnapResult",
    "Severity",
    "SnapConfig",
    "SnapConstraints",
    "SnapResult",
    "SnapUnit",
    "TRACKER_PRIORITIES",
    "TRACKER_STATUSES",
    "TRACKER_TYPES",
    "Tracker",
    "TrackerDateMetrics",
    "TrackerLane",
    "TrackerPriority",
    "TrackerStatus",
    "TrackerType",
    "TrackerValidator",
    "ValidationConfig",
    "ValidationResult",
    "ViewMode",
    "assign_lanes",
    "board_config_from_dict",
    "can_move_tracker_to",
    "check_timeline_integrity",
    "collision_summary",
    "compact_lanes",
    "detect_collisions",
    "extended_range",
    "find_alternative_dates",
    "find_available_lane",
    "find_date_gaps",
    "find_date_overlaps",
    "format_errors",
    "format_warnings",
    "inclusive_days",
    "lane_height",
    "load_board_config",
    "load_trackers",
    "next_range",
    "optimal_lane_count",
    "optimal_placement",
    "optimization_recommendations",
    "optimize_lanes",
    "overlap_span",
    "packing_metrics",
    "previous_range",
    "ranges_overlap",
    "reassign_tracker_lane",
    "recommend_lane_count",
    "recommend_view_mode",
    "simulate_lane_limit",
    "snap_config_for_view_mode",
    "snap_date",
    "snap_pixel_to_date",
    "snap_range",
    "summarize",
    "tracker_coverage",
    "tracker_date_metrics",
    "tracker_from_dict",
    "tracker_to_dict",
    "validate_drag",
    "validate_lane_assignments",
    "validate_tracker",
    "view_mode_range",
    "visible_range",
    "working_days",
]
