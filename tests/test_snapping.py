from __future__ import annotations

import datetime as dt
import unittest

from trackboard_core.dates import ViewMode
from trackboard_core.snapping import (
    SnapConfig,
    SnapConstraints,
    SnapUnit,
    adjacent_snap_positions,
    magnetic_strength,
    snap_config_for_view_mode,
    snap_date,
    snap_feedback,
    snap_pixel_to_date,
    snap_range,
)


class SnapDateTests(unittest.TestCase):
    def test_weekly_weekend_moves_to_nearer_week_edge(self) -> None:
        cfg = snap_config_for_view_mode(ViewMode.WEEKLY)
        saturday = snap_date(dt.date(2024, 1, 13), ViewMode.WEEKLY, cfg)
        self.assertEqual(saturday.snapped, dt.date(2024, 1, 14))
        self.assertEqual(saturday.reason, "Snapped to end of week")
        weekday = snap_date(dt.date(2024, 1, 10), ViewMode.WEEKLY, cfg)
        self.assertEqual(weekday.snapped, dt.date(2024, 1, 10))
        self.assertFalse(weekday.was_snapped)

    def test_quarterly_snaps_near_month_boundaries(self) -> None:
        cfg = snap_config_for_view_mode(ViewMode.QUARTERLY)
        self.assertEqual(snap_date(dt.date(2024, 3, 2), ViewMode.QUARTERLY, cfg).snapped, dt.date(2024, 3, 1))
        self.assertEqual(snap_date(dt.date(2024, 3, 30), ViewMode.QUARTERLY, cfg).snapped, dt.date(2024, 3, 31))

    def test_quarterly_grid_snaps_to_week_start(self) -> None:
        cfg = snap_config_for_view_mode(ViewMode.QUARTERLY)
        result = snap_date(dt.date(2024, 1, 17), ViewMode.QUARTERLY, cfg)
        self.assertEqual(result.snapped, dt.date(2024, 1, 15))
        self.assertEqual(result.distance_days, 2)

    def test_snapping_twice_is_a_no_op(self) -> None:
        day = dt.date(2023, 12, 1)
        for mode in ViewMode:
            cfg = snap_config_for_view_mode(mode)
            for offset in range(120):
                once = snap_date(day + dt.timedelta(days=offset), mode, cfg).snapped
                twice = snap_date(once, mode, cfg).snapped
                self.assertEqual(once, twice, f"{mode.value} {once}")

    def test_disabled_config_returns_input(self) -> None:
        result = snap_date(dt.date(2024, 1, 13), ViewMode.WEEKLY, SnapConfig(enabled=False))
        self.assertEqual(result.snapped, dt.date(2024, 1, 13))
        self.assertEqual(result.reason, "Snapping disabled")

    def test_constraints_clamp_and_skip_blocked_dates(self) -> None:
        cfg = SnapConfig(smart=False)
        constraints = SnapConstraints(min_date=dt.date(2024, 1, 5), blocked_dates=frozenset({dt.date(2024, 1, 5)}))
        result = snap_date(dt.date(2024, 1, 1), ViewMode.MONTHLY, cfg, constraints)
        self.assertEqual(result.snapped, dt.date(2024, 1, 6))
        self.assertEqual(result.reason, "Moved off blocked date")

    def test_result_never_leaves_min_max_window(self) -> None:
        cfg = snap_config_for_view_mode(ViewMode.QUARTERLY)
        floor = SnapConstraints(min_date=dt.date(2024, 1, 2))
        result = snap_date(dt.date(2023, 12, 20), ViewMode.QUARTERLY, cfg, floor)
        self.assertEqual(result.snapped, dt.date(2024, 1, 2))
        self.assertEqual(result.reason, "Constrained to minimum date")

        ceiling = SnapConstraints(max_date=dt.date(2024, 3, 30))
        for day in range(20, 31):
            snapped = snap_date(dt.date(2024, 3, day), ViewMode.QUARTERLY, cfg, ceiling).snapped
            self.assertLessEqual(snapped, dt.date(2024, 3, 30))

        blocked_edge = SnapConstraints(
            min_date=dt.date(2024, 1, 5), max_date=dt.date(2024, 1, 5), blocked_dates=frozenset({dt.date(2024, 1, 5)})
        )
        self.assertEqual(snap_date(dt.date(2024, 1, 9), ViewMode.MONTHLY, cfg, blocked_edge).snapped, dt.date(2024, 1, 5))

    def test_preferred_date_wins_when_close(self) -> None:
        constraints = SnapConstraints(preferred_dates=(dt.date(2024, 1, 11),))
        result = snap_date(dt.date(2024, 1, 10), ViewMode.MONTHLY, SnapConfig(), constraints)
        self.assertEqual(result.snapped, dt.date(2024, 1, 11))
        far = SnapConstraints(preferred_dates=(dt.date(2024, 1, 20),))
        self.assertEqual(snap_date(dt.date(2024, 1, 10), ViewMode.MONTHLY, SnapConfig(), far).snapped, dt.date(2024, 1, 10))


class SnapRangeTests(unittest.TestCase):
    def test_preserve_duration_keeps_length(self) -> None:
        cfg = snap_config_for_view_mode(ViewMode.QUARTERLY)
        for offset in range(40):
            start = dt.date(2024, 2, 1) + dt.timedelta(days=offset)
            end = start + dt.timedelta(days=9)
            result = snap_range(start, end, ViewMode.QUARTERLY, cfg)
            self.assertEqual((result.end - result.start).days, 9)
            self.assertFalse(result.duration_changed)

    def test_independent_ends_keep_end_after_start(self) -> None:
        cfg = SnapConfig(unit=SnapUnit.MONTH, preserve_duration=False, smart=False)
        result = snap_range(dt.date(2024, 1, 20), dt.date(2024, 1, 25), ViewMode.MONTHLY, cfg)
        self.assertEqual(result.start, dt.date(2024, 1, 1))
        self.assertEqual(result.end, dt.date(2024, 1, 6))
        self.assertEqual(result.end_snap.reason, "Adjusted to ensure end date is after start date")


class PixelSnapTests(unittest.TestCase):
    def test_pixel_offset_truncates_to_day(self) -> None:
        cfg = SnapConfig(smart=False)
        result = snap_pixel_to_date(79.0, dt.date(2024, 1, 1), 40.0, ViewMode.MONTHLY, cfg)
        self.assertEqual(result.snapped, dt.date(2024, 1, 2))

    def test_sub_day_weekly_rounds(self) -> None:
        cfg = SnapConfig(smart=False, allow_sub_day=True)
        result = snap_pixel_to_date(190.0, dt.date(2024, 1, 1), 120.0, ViewMode.WEEKLY, cfg)
        self.assertEqual(result.snapped, dt.date(2024, 1, 3))

    def test_pixels_per_day_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            snap_pixel_to_date(10.0, dt.date(2024, 1, 1), 0.0, ViewMode.WEEKLY)


class FeedbackTests(unittest.TestCase):
    def test_magnetic_strength_bands(self) -> None:
        self.assertEqual(magnetic_strength(4, 10), 1.0)
        self.assertEqual(magnetic_strength(7, 10), 0.8)
        self.assertEqual(magnetic_strength(9, 10), 0.5)
        self.assertEqual(magnetic_strength(11, 10), 0.0)
        self.assertEqual(magnetic_strength(9, 10, SnapConfig(magnetic=False)), 1.0)

    def test_feedback_fades_with_distance(self) -> None:
        near = snap_feedback(snap_date(dt.date(2024, 1, 13), ViewMode.WEEKLY))
        self.assertTrue(near.show_indicator)
        self.assertGreater(near.intensity, 0.8)
        idle = snap_feedback(snap_date(dt.date(2024, 1, 10), ViewMode.WEEKLY))
        self.assertFalse(idle.show_indicator)

    def test_adjacent_positions(self) -> None:
        prev_month, next_month = adjacent_snap_positions(dt.date(2024, 1, 31), SnapUnit.MONTH)
        self.assertEqual(prev_month, dt.date(2023, 12, 31))
        self.assertEqual(next_month, dt.date(2024, 2, 29))


if __name__ == "__main__":
    unittest.main()
