from __future__ import annotations

import dataclasses
import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Sequence

from .collisions import CollisionOptions, LaneScope, Severity, detect_collisions
from .dates import add_years, inclusive_days, is_weekend
from .lanes import LaneMap
from .schema import (
    TRACKER_PRIORITIES,
    TRACKER_STATUSES,
    TRACKER_TYPES,
    Tracker,
    TrackerPriority,
    TrackerStatus,
    coerce_date,
    pick_field,
)

LONG_DURATION_DAYS = 90


class BulkOperation(str, Enum):
    DELETE = "delete"
    UPDATE_STATUS = "update_status"
    MOVE_LANE = "move_lane"


@dataclass(frozen=True)
class ValidationConfig:
    min_duration_days: int = 1
    max_duration_days: int = 365
    allow_past_dates: bool = True
    allow_weekends: bool = True
    max_future_years: int = 2
    max_lanes: int = 50
    strict_collisions: bool = False
    max_trackers_per_lane: int = 20
    bulk_warning_size: int = 20

    def __post_init__(self) -> None:
        if self.min_duration_days < 1:
            raise ValueError("min_duration_days must be >= 1")
        if self.max_duration_days < self.min_duration_days:
            raise ValueError("max_duration_days must be >= min_duration_days")
        if self.max_future_years < 0:
            raise ValueError("max_future_years must be >= 0")
        if self.max_lanes < 1:
            raise ValueError("max_lanes must be >= 1")
        if self.max_trackers_per_lane < 1:
            raise ValueError("max_trackers_per_lane must be >= 1")
        if self.bulk_warning_size < 1:
            raise ValueError("bulk_warning_size must be >= 1")


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    field: str | None = None
    constraint: str | None = None


@dataclass(frozen=True)
class ValidationWarning:
    code: str
    message: str
    suggestion: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationWarning, ...] = ()
    can_proceed: bool | None = None

    def __post_init__(self) -> None:
        if self.can_proceed is None:
            object.__setattr__(self, "can_proceed", not self.errors)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def ok(self) -> bool:
        return self.is_valid

    def codes(self) -> tuple[str, ...]:
        return tuple(issue.code for issue in self.errors)

    def warning_codes(self) -> tuple[str, ...]:
        return tuple(warning.code for warning in self.warnings)


class TrackerValidator:
    """Reports on proposed tracker data and placements without raising."""

    def __init__(
        self,
        config: ValidationConfig | None = None,
        today: dt.date | None = None,
        collision_options: CollisionOptions | None = None,
    ) -> None:
        self.config = config or ValidationConfig()
        self._today = today
        self._collision_options = collision_options or CollisionOptions()

    @property
    def today(self) -> dt.date:
        return self._today or dt.date.today()

    def with_config(self, **changes: Any) -> "TrackerValidator":
        return TrackerValidator(
            dataclasses.replace(self.config, **changes),
            today=self._today,
            collision_options=self._collision_options,
        )

    def validate_tracker(self, partial: Mapping[str, Any]) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationWarning] = []

        title = pick_field(partial, "title")
        if title is None or not str(title).strip():
            errors.append(ValidationIssue("missing_required_field", "Tracker title is required", field="title"))
        raw_start = pick_field(partial, "start_date")
        raw_end = pick_field(partial, "end_date")
        if raw_start is None:
            errors.append(ValidationIssue("missing_required_field", "Start date is required", field="start_date"))
        if raw_end is None:
            errors.append(ValidationIssue("missing_required_field", "End date is required", field="end_date"))

        for field_name, allowed, code, label in (
            ("tracker_type", TRACKER_TYPES, "invalid_tracker_type", "tracker type"),
            ("priority", TRACKER_PRIORITIES, "invalid_priority", "priority level"),
            ("status", TRACKER_STATUSES, "invalid_status", "status"),
        ):
            value = pick_field(partial, field_name)
            if value is not None and str(getattr(value, "value", value)) not in allowed:
                errors.append(ValidationIssue(code, f"Invalid {label}: {value!r}", field=field_name))

        start = _parse_date(raw_start)
        end = _parse_date(raw_end)
        if raw_start is not None and start is None:
            errors.append(ValidationIssue("invalid_date_range", "Invalid start date", field="start_date"))
        if raw_end is not None and end is None:
            errors.append(ValidationIssue("invalid_date_range", "Invalid end date", field="end_date"))

        if start is not None and end is not None:
            range_errors, range_warnings = self._check_range(start, end)
            errors.extend(range_errors)
            warnings.extend(range_warnings)
        return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))

    def validate_drag(
        self,
        tracker: Tracker,
        new_start: dt.date,
        new_end: dt.date,
        new_lane: int,
        trackers: Sequence[Tracker],
        lane_map: LaneMap,
    ) -> ValidationResult:
        errors, warnings = self._check_range(new_start, new_end)

        if new_lane < 0:
            errors.append(ValidationIssue("invalid_lane", "Lane index cannot be negative", field="lane"))
        elif new_lane >= self.config.max_lanes:
            errors.append(
                ValidationIssue(
                    "invalid_lane",
                    f"Lane index must be below {self.config.max_lanes}",
                    field="lane",
                )
            )

        if new_lane >= 0 and new_end >= new_start:
            options = dataclasses.replace(
                self._collision_options,
                scope=LaneScope.SAME_LANE,
                allow_partial_overlaps=not self.config.strict_collisions,
            )
            candidate = tracker.with_range(new_start, new_end)
            report = detect_collisions(candidate, new_lane, trackers, lane_map, options)
            if report.has_collision:
                count = len(report.collisions)
                if report.by_severity(Severity.MAJOR) or self.config.strict_collisions:
                    errors.append(
                        ValidationIssue(
                            "collision_detected",
                            f"Tracker would overlap with {count} other tracker(s)",
                            field="position",
                        )
                    )
                else:
                    if report.suggested_lane is not None:
                        suggestion = f"Consider moving to lane {report.suggested_lane}"
                    elif report.alternative is not None:
                        suggestion = (
                            f"Consider {report.alternative.start_date.isoformat()}"
                            f" to {report.alternative.end_date.isoformat()}"
                        )
                    else:
                        suggestion = "Consider adjusting the date range"
                    severity = report.worst_severity
                    label = severity.value.capitalize() if severity is not None else "Minor"
                    warnings.append(
                        ValidationWarning("overlap", f"{label} overlap with {count} tracker(s)", suggestion=suggestion)
                    )

        in_lane = [t for t in trackers if t.tracker_id != tracker.tracker_id and lane_map.lane_of(t.tracker_id) == new_lane]
        if len(in_lane) >= self.config.max_trackers_per_lane:
            warnings.append(
                ValidationWarning(
                    "performance_warning",
                    f"Lane {new_lane} has many trackers ({len(in_lane)})",
                    suggestion="Consider using a different lane",
                )
            )
        return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))

    def validate_resize(
        self,
        tracker: Tracker,
        new_start: dt.date,
        new_end: dt.date,
        trackers: Sequence[Tracker],
        lane_map: LaneMap,
    ) -> ValidationResult:
        lane = lane_map.lane_of(tracker.tracker_id)
        return self.validate_drag(tracker, new_start, new_end, 0 if lane is None else lane, trackers, lane_map)

    def validate_bulk(self, trackers: Sequence[Tracker], operation: BulkOperation) -> ValidationResult:
        """Bulk operations only warn; the caller decides whether to continue."""
        operation = BulkOperation(operation)
        warnings: list[ValidationWarning] = []
        if not trackers:
            warnings.append(ValidationWarning("empty_selection", "No trackers selected for bulk operation"))

        if operation is BulkOperation.DELETE:
            important = [
                t for t in trackers if t.priority in (TrackerPriority.CRITICAL, TrackerPriority.HIGH)
            ]
            if important:
                warnings.append(
                    ValidationWarning(
                        "high_priority_delete",
                        f"Deleting {len(important)} high or critical priority tracker(s)",
                        suggestion="Consider changing priority before deletion",
                    )
                )
            in_progress = [t for t in trackers if t.status is TrackerStatus.IN_PROGRESS]
            if in_progress:
                warnings.append(
                    ValidationWarning(
                        "resource_conflict",
                        f"Deleting {len(in_progress)} in-progress tracker(s)",
                        suggestion="Complete or pause trackers before deletion",
                    )
                )

        if len(trackers) > self.config.bulk_warning_size:
            warnings.append(
                ValidationWarning(
                    "performance_warning",
                    f"Bulk operation affects {len(trackers)} trackers",
                    suggestion="Consider processing in smaller batches",
                )
            )
        return ValidationResult(warnings=tuple(warnings), can_proceed=True)

    def _check_range(
        self, start: dt.date, end: dt.date
    ) -> tuple[list[ValidationIssue], list[ValidationWarning]]:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationWarning] = []
        if end < start:
            errors.append(
                ValidationIssue("invalid_date_range", "End date must not be before start date", field="end_date")
            )
            return errors, warnings

        cfg = self.config
        duration = inclusive_days(start, end)
        if duration < cfg.min_duration_days:
            errors.append(
                ValidationIssue(
                    "duration_too_short",
                    f"Duration must be at least {cfg.min_duration_days} day(s)",
                    constraint=f"min: {cfg.min_duration_days} days",
                )
            )
        if duration > cfg.max_duration_days:
            errors.append(
                ValidationIssue(
                    "duration_too_long",
                    f"Duration cannot exceed {cfg.max_duration_days} days",
                    constraint=f"max: {cfg.max_duration_days} days",
                )
            )

        today = self.today
        if start < today:
            if cfg.allow_past_dates:
                warnings.append(
                    ValidationWarning(
                        "past_date_warning",
                        "Tracker starts in the past",
                        suggestion="Consider updating the start date",
                    )
                )
            else:
                errors.append(ValidationIssue("date_in_past", "Start date cannot be in the past", field="start_date"))

        if end > add_years(today, cfg.max_future_years):
            errors.append(
                ValidationIssue(
                    "date_too_far_future",
                    f"End date cannot be more than {cfg.max_future_years} years in the future",
                    field="end_date",
                )
            )

        if not cfg.allow_weekends:
            if is_weekend(start):
                warnings.append(
                    ValidationWarning("weekend_dates", "Tracker starts on a weekend", suggestion="Consider starting on a weekday")
                )
            if is_weekend(end):
                warnings.append(
                    ValidationWarning("weekend_dates", "Tracker ends on a weekend", suggestion="Consider ending on a weekday")
                )

        if duration > LONG_DURATION_DAYS:
            warnings.append(
                ValidationWarning(
                    "long_duration",
                    f"Long duration tracker ({duration} days)",
                    suggestion="Consider breaking into smaller trackers",
                )
            )
        return errors, warnings


def validate_tracker(partial: Mapping[str, Any], *, today: dt.date | None = None) -> ValidationResult:
    return TrackerValidator(today=today).validate_tracker(partial)


def validate_drag(
    tracker: Tracker,
    new_start: dt.date,
    new_end: dt.date,
    new_lane: int,
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    *,
    today: dt.date | None = None,
) -> ValidationResult:
    return TrackerValidator(today=today).validate_drag(tracker, new_start, new_end, new_lane, trackers, lane_map)


def format_errors(errors: Sequence[ValidationIssue]) -> list[str]:
    out: list[str] = []
    for issue in errors:
        message = f"{issue.field}: {issue.message}" if issue.field else issue.message
        if issue.constraint:
            message += f" ({issue.constraint})"
        out.append(message)
    return out


def format_warnings(warnings: Sequence[ValidationWarning]) -> list[str]:
    return [f"{w.message} - {w.suggestion}" if w.suggestion else w.message for w in warnings]


def summarize(result: ValidationResult) -> str:
    if result.is_valid and not result.warnings:
        return "All validations passed"
    error_count = len(result.errors)
    warning_count = len(result.warnings)
    summary = f"{error_count} error{'s' if error_count != 1 else ''}"
    if warning_count:
        summary += f", {warning_count} warning{'s' if warning_count != 1 else ''}"
    return summary


def require_valid(result: ValidationResult) -> None:
    if result.errors:
        joined = "; ".join(format_errors(result.errors))
        raise ValueError(f"Tracker validation failed: {joined}")


def _parse_date(raw: object) -> dt.date | None:
    try:
        return coerce_date(raw)
    except (TypeError, ValueError):
        return None
