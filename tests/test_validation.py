from __future__ import annotations

import datetime as dt
import unittest

from trackboard_core.lanes import assign_lanes
from trackboard_core.schema import Tracker, TrackerPriority, TrackerStatus
from trackboard_core.validation import (
    BulkOperation,
    TrackerValidator,
    ValidationConfig,
    format_errors,
    require_valid,
    summarize,
    validate_tracker,
)

TODAY = dt.date(2024, 1, 1)


def _tracker(tracker_id: str, start: dt.date, end: dt.date, **kwargs: object) -> Tracker:
    return Tracker(
        tracker_id=tracker_id,
        project_id="p1",
        title=tracker_id.upper(),
        start_date=start,
        end_date=end,
        **kwargs,
    )


class ValidateTrackerTests(unittest.TestCase):
    def test_valid_partial_passes(self) -> None:
        result = validate_tracker(
            {"title": "Ship", "startDate": "2024-02-01", "endDate": "2024-02-10", "priority": "high"},
            today=TODAY,
        )
        self.assertTrue(result.is_valid)
        self.assertEqual(summarize(result), "All validations passed")

    def test_inverted_range_is_always_reported(self) -> None:
        result = validate_tracker({"start_date": "2024-02-10", "end_date": "2024-02-01"}, today=TODAY)
        self.assertIn("invalid_date_range", result.codes())
        self.assertIn("missing_required_field", result.codes())
        self.assertFalse(result.can_proceed)

    def test_missing_fields_and_bad_enums(self) -> None:
        result = validate_tracker({"type": "epic", "status": "paused"}, today=TODAY)
        self.assertEqual(
            sorted(result.codes()),
            [
                "invalid_status",
                "invalid_tracker_type",
                "missing_required_field",
                "missing_required_field",
                "missing_required_field",
            ],
        )

    def test_unparseable_date(self) -> None:
        result = validate_tracker({"title": "x", "start_date": "soon", "end_date": "2024-02-01"}, today=TODAY)
        self.assertEqual(result.codes(), ("invalid_date_range",))

    def test_duration_and_future_limits(self) -> None:
        validator = TrackerValidator(ValidationConfig(max_duration_days=30), today=TODAY)
        long = validator.validate_tracker({"title": "x", "start_date": "2024-02-01", "end_date": "2024-04-01"})
        self.assertIn("duration_too_long", long.codes())
        far = validator.validate_tracker({"title": "x", "start_date": "2026-06-01", "end_date": "2026-06-02"})
        self.assertIn("date_too_far_future", far.codes())

    def test_past_dates_warn_or_fail(self) -> None:
        partial = {"title": "x", "start_date": "2023-12-20", "end_date": "2024-01-05"}
        lenient = TrackerValidator(today=TODAY).validate_tracker(partial)
        self.assertTrue(lenient.is_valid)
        self.assertIn("past_date_warning", lenient.warning_codes())
        strict = TrackerValidator(ValidationConfig(allow_past_dates=False), today=TODAY).validate_tracker(partial)
        self.assertIn("date_in_past", strict.codes())

    def test_weekend_and_long_duration_warnings(self) -> None:
        validator = TrackerValidator(ValidationConfig(allow_weekends=False), today=TODAY)
        result = validator.validate_tracker({"title": "x", "start_date": "2024-01-06", "end_date": "2024-05-05"})
        self.assertTrue(result.is_valid)
        self.assertEqual(result.warning_codes(), ("weekend_dates", "weekend_dates", "long_duration"))

    def test_require_valid_raises_with_messages(self) -> None:
        result = validate_tracker({"title": "", "start_date": "2024-02-01", "end_date": "2024-02-02"}, today=TODAY)
        with self.assertRaisesRegex(ValueError, "title: Tracker title is required"):
            require_valid(result)
        self.assertEqual(format_errors(result.errors), ["title: Tracker title is required"])


class ValidateDragTests(unittest.TestCase):
    def setUp(self) -> None:
        self.validator = TrackerValidator(today=TODAY)
        self.a = _tracker("a", dt.date(2024, 1, 1), dt.date(2024, 1, 10))
        self.b = _tracker("b", dt.date(2024, 1, 20), dt.date(2024, 1, 25))
        self.trackers = [self.a, self.b]
        self.lane_map = assign_lanes(self.trackers)

    def test_lane_bounds(self) -> None:
        negative = self.validator.validate_drag(self.b, self.b.start_date, self.b.end_date, -1, self.trackers, self.lane_map)
        self.assertIn("invalid_lane", negative.codes())
        top = self.validator.validate_drag(self.b, self.b.start_date, self.b.end_date, 49, self.trackers, self.lane_map)
        self.assertNotIn("invalid_lane", top.codes())
        over = self.validator.validate_drag(self.b, self.b.start_date, self.b.end_date, 50, self.trackers, self.lane_map)
        self.assertIn("invalid_lane", over.codes())

    def test_major_overlap_blocks_drop(self) -> None:
        result = self.validator.validate_drag(
            self.b, dt.date(2024, 1, 3), dt.date(2024, 1, 8), 0, self.trackers, self.lane_map
        )
        self.assertIn("collision_detected", result.codes())

    def test_single_day_touch_is_tolerated_unless_strict(self) -> None:
        start, end = dt.date(2024, 1, 10), dt.date(2024, 1, 15)
        lenient = self.validator.validate_drag(self.b, start, end, 0, self.trackers, self.lane_map)
        self.assertTrue(lenient.is_valid)
        strict = TrackerValidator(ValidationConfig(strict_collisions=True), today=TODAY).validate_drag(
            self.b, start, end, 0, self.trackers, self.lane_map
        )
        self.assertIn("collision_detected", strict.codes())

    def test_minor_overlap_warns_with_suggestion(self) -> None:
        result = self.validator.validate_drag(
            self.b, dt.date(2024, 1, 9), dt.date(2024, 1, 25), 0, self.trackers, self.lane_map
        )
        self.assertTrue(result.is_valid)
        self.assertEqual(result.warning_codes(), ("overlap",))
        self.assertEqual(result.warnings[0].suggestion, "Consider moving to lane 1")
        self.assertEqual(result.warnings[0].message, "Minor overlap with 1 tracker(s)")

    def test_moderate_overlap_warning_names_its_severity(self) -> None:
        result = self.validator.validate_drag(
            self.b, dt.date(2024, 1, 7), dt.date(2024, 1, 18), 0, self.trackers, self.lane_map
        )
        self.assertTrue(result.is_valid)
        self.assertEqual(result.warnings[0].message, "Moderate overlap with 1 tracker(s)")

    def test_resize_checks_current_lane(self) -> None:
        result = self.validator.validate_resize(
            self.b, dt.date(2024, 1, 25), dt.date(2024, 1, 20), self.trackers, self.lane_map
        )
        self.assertEqual(result.codes(), ("invalid_date_range",))


class ValidateBulkTests(unittest.TestCase):
    def test_bulk_only_warns(self) -> None:
        validator = TrackerValidator(ValidationConfig(bulk_warning_size=1), today=TODAY)
        trackers = [
            _tracker("a", TODAY, TODAY, priority=TrackerPriority.CRITICAL),
            _tracker("b", TODAY, TODAY, status=TrackerStatus.IN_PROGRESS),
        ]
        result = validator.validate_bulk(trackers, BulkOperation.DELETE)
        self.assertTrue(result.can_proceed)
        self.assertEqual(result.errors, ())
        self.assertEqual(
            result.warning_codes(), ("high_priority_delete", "resource_conflict", "performance_warning")
        )

    def test_empty_selection_warns(self) -> None:
        result = TrackerValidator(today=TODAY).validate_bulk([], BulkOperation.UPDATE_STATUS)
        self.assertTrue(result.can_proceed)
        self.assertEqual(result.warning_codes(), ("empty_selection",))


if __name__ == "__main__":
    unittest.main()
