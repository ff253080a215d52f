from __future__ import annotations

import datetime as dt
import random
import unittest

from trackboard_core.dates import ranges_overlap
from trackboard_core.lanes import (
    LaneMap,
    assign_lanes,
    compact_lanes,
    optimal_lane_count,
    reassign_tracker_lane,
    validate_lane_assignments,
)
from trackboard_core.schema import Tracker


def _tracker(tracker_id: str, start: dt.date, end: dt.date) -> Tracker:
    return Tracker(tracker_id=tracker_id, project_id="p1", title=f"Tracker {tracker_id}", start_date=start, end_date=end)


def _jan(day: int) -> dt.date:
    return dt.date(2024, 1, day)


class LaneAssignmentTests(unittest.TestCase):
    def test_overlapping_pair_splits_and_later_tracker_reuses_lane_zero(self) -> None:
        trackers = [
            _tracker("t1", _jan(1), _jan(5)),
            _tracker("t2", _jan(3), _jan(8)),
            _tracker("t3", _jan(10), _jan(12)),
        ]
        lane_map = assign_lanes(trackers)
        self.assertEqual(dict(lane_map.assignments), {"t1": 0, "t2": 1, "t3": 0})
        self.assertEqual(lane_map.lane_count, 2)
        self.assertEqual([t.tracker_id for t in lane_map.members(0)], ["t1", "t3"])

    def test_no_lane_holds_overlapping_trackers(self) -> None:
        trackers = [
            _tracker("a", _jan(1), _jan(10)),
            _tracker("b", _jan(2), _jan(4)),
            _tracker("c", _jan(4), _jan(6)),
            _tracker("d", _jan(5), _jan(20)),
            _tracker("e", _jan(11), _jan(12)),
            _tracker("f", _jan(7), _jan(7)),
        ]
        lane_map = assign_lanes(trackers)
        for lane in lane_map.lanes:
            members = lane.trackers
            for i, first in enumerate(members):
                for second in members[i + 1 :]:
                    self.assertFalse(
                        ranges_overlap(first.start_date, first.end_date, second.start_date, second.end_date),
                        f"{first.tracker_id} and {second.tracker_id} share lane {lane.index}",
                    )
        self.assertTrue(validate_lane_assignments(lane_map, trackers).ok)

    def test_random_tracker_sets_pack_without_overlap_and_deterministically(self) -> None:
        rng = random.Random(20240101)
        base = dt.date(2024, 1, 1)
        for _ in range(300):
            trackers = []
            for index in range(rng.randint(0, 25)):
                start = base + dt.timedelta(days=rng.randint(0, 90))
                end = start + dt.timedelta(days=rng.randint(0, 20))
                trackers.append(_tracker(f"r{index}", start, end))
            lane_map = assign_lanes(trackers)
            self.assertTrue(validate_lane_assignments(lane_map, trackers).ok)
            shuffled = list(trackers)
            rng.shuffle(shuffled)
            self.assertEqual(dict(assign_lanes(shuffled).assignments), dict(lane_map.assignments))

            depth = 0
            for tracker in trackers:
                day = tracker.start_date
                depth = max(depth, sum(1 for t in trackers if t.start_date <= day <= t.end_date))
            self.assertEqual(lane_map.lane_count, depth)

    def test_mutually_overlapping_trackers_need_one_lane_each(self) -> None:
        trackers = [_tracker(f"t{i}", _jan(1), _jan(10 + i)) for i in range(5)]
        self.assertEqual(optimal_lane_count(trackers), 5)

    def test_disjoint_trackers_share_one_lane(self) -> None:
        trackers = [_tracker(f"t{i}", _jan(1 + 3 * i), _jan(2 + 3 * i)) for i in range(6)]
        lane_map = assign_lanes(trackers)
        self.assertEqual(set(lane_map.assignments.values()), {0})

    def test_touching_end_and_start_dates_overlap(self) -> None:
        lane_map = assign_lanes([_tracker("a", _jan(1), _jan(5)), _tracker("b", _jan(5), _jan(9))])
        self.assertEqual(lane_map.lane_count, 2)

    def test_assignment_ignores_input_order(self) -> None:
        trackers = [
            _tracker("a", _jan(1), _jan(5)),
            _tracker("b", _jan(3), _jan(8)),
            _tracker("c", _jan(10), _jan(12)),
            _tracker("d", _jan(6), _jan(11)),
        ]
        forward = assign_lanes(trackers)
        backward = assign_lanes(list(reversed(trackers)))
        self.assertEqual(dict(forward.assignments), dict(backward.assignments))

    def test_empty_board_has_no_lanes(self) -> None:
        lane_map = assign_lanes([])
        self.assertEqual(lane_map.lane_count, 0)
        self.assertEqual(dict(lane_map.assignments), {})

    def test_lane_map_rejects_negative_lane(self) -> None:
        with self.assertRaises(ValueError):
            LaneMap(assignments={"a": -1})


class LaneReassignmentTests(unittest.TestCase):
    def test_requested_lane_is_honored_when_free(self) -> None:
        trackers = [_tracker("a", _jan(1), _jan(5)), _tracker("b", _jan(10), _jan(12))]
        lane_map = assign_lanes(trackers)
        placed = reassign_tracker_lane("b", 3, lane_map, trackers)
        self.assertTrue(placed.honored)
        self.assertEqual(placed.lane_map.lane_of("b"), 3)
        self.assertEqual(placed.lane_map.lane_count, 4)

    def test_blocked_lane_falls_back_to_first_free_lane(self) -> None:
        trackers = [
            _tracker("a", _jan(1), _jan(5)),
            _tracker("b", _jan(3), _jan(8)),
            _tracker("c", _jan(20), _jan(22)),
        ]
        lane_map = assign_lanes(trackers)
        placed = reassign_tracker_lane("c", 0, lane_map, trackers)
        self.assertTrue(placed.honored)

        blocked = reassign_tracker_lane("b", 0, lane_map, trackers)
        self.assertFalse(blocked.honored)
        self.assertEqual(blocked.assigned_lane, 1)
        self.assertIn("a", blocked.reason)

    def test_unknown_tracker_leaves_map_unchanged(self) -> None:
        trackers = [_tracker("a", _jan(1), _jan(5))]
        lane_map = assign_lanes(trackers)
        placed = reassign_tracker_lane("zzz", 0, lane_map, trackers)
        self.assertIs(placed.lane_map, lane_map)

    def test_compact_lanes_removes_gaps(self) -> None:
        trackers = [_tracker("a", _jan(1), _jan(5)), _tracker("b", _jan(10), _jan(12))]
        spread = reassign_tracker_lane("b", 4, assign_lanes(trackers), trackers).lane_map
        compacted = compact_lanes(spread)
        self.assertEqual(dict(compacted.assignments), {"a": 0, "b": 1})


if __name__ == "__main__":
    unittest.main()
