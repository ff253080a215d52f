from __future__ import annotations

import datetime as dt
import unittest

from trackboard_core.config import DragConfig
from trackboard_core.dates import ViewMode
from trackboard_core.lanes import assign_lanes
from trackboard_core.schema import Tracker
from trackboard_core.validation import TrackerValidator
from trackboard_ui.drag import (
    IDLE,
    DragContext,
    DragController,
    DragKind,
    DragPhase,
    begin_drag,
    cancel,
    drag_kind_at,
    drag_move,
    preview_hint,
    release,
    settle,
)
from trackboard_ui.events import PointerEvent
from trackboard_ui.geometry import board_layout

TODAY = dt.date(2024, 1, 1)


def _tracker(tracker_id: str, start: dt.date, end: dt.date) -> Tracker:
    return Tracker(tracker_id=tracker_id, project_id="p1", title=tracker_id.upper(), start_date=start, end_date=end)


def _jan(day: int) -> dt.date:
    return dt.date(2024, 1, day)


def _context(trackers: list[Tracker], **kwargs: object) -> DragContext:
    return DragContext(
        view_mode=kwargs.pop("view_mode", ViewMode.MONTHLY),
        trackers=tuple(trackers),
        lane_map=assign_lanes(trackers),
        validator=TrackerValidator(today=TODAY),
        **kwargs,
    )


class DragKindTests(unittest.TestCase):
    def test_edges_resize_and_body_moves(self) -> None:
        self.assertIs(drag_kind_at(2, 0, 200), DragKind.RESIZE_START)
        self.assertIs(drag_kind_at(100, 0, 200), DragKind.MOVE)
        self.assertIs(drag_kind_at(195, 0, 200), DragKind.RESIZE_END)
        self.assertIsNone(drag_kind_at(250, 0, 200))


class DragControllerTests(unittest.TestCase):
    def test_move_by_ten_days_in_monthly_view(self) -> None:
        tracker = _tracker("t1", _jan(1), _jan(5))
        context = _context([tracker])
        layout = board_layout(context.trackers, context.lane_map, _jan(1), _jan(31), ViewMode.MONTHLY)
        controller = DragController()

        down = controller.handle(PointerEvent("pointer_down", x=100, y=20), context, layout)
        self.assertIs(down.phase, DragPhase.DRAGGING)
        assert down.session is not None
        self.assertIs(down.session.kind, DragKind.MOVE)

        moved = controller.handle(PointerEvent("pointer_move", x=500, y=20), context, layout)
        assert moved.session is not None
        self.assertEqual((moved.session.preview_start, moved.session.preview_end), (_jan(11), _jan(15)))
        self.assertEqual(moved.session.candidate_lane, 0)
        self.assertTrue(preview_hint(moved).valid)

        done = controller.handle(PointerEvent("pointer_up"), context, layout)
        self.assertIs(done.phase, DragPhase.COMMITTING)
        assert done.commit is not None
        self.assertTrue(done.commit.changed)
        self.assertEqual(done.commit.as_partial(), {"start_date": "2024-01-11", "end_date": "2024-01-15"})
        self.assertIs(controller.settle().phase, DragPhase.IDLE)

    def test_escape_cancels_and_settles_to_idle(self) -> None:
        tracker = _tracker("t1", _jan(1), _jan(5))
        context = _context([tracker])
        controller = DragController()
        controller.handle(PointerEvent("pointer_down", x=100, y=20, tracker_id="t1"), context)
        self.assertEqual(len(controller.active_sessions()), 1)
        state = controller.handle(PointerEvent("key_down", key="Escape"), context)
        self.assertIs(state.phase, DragPhase.CANCELLED)
        self.assertEqual(controller.active_sessions(), [])
        self.assertIs(controller.settle().phase, DragPhase.IDLE)

    def test_pointer_down_outside_any_tracker_stays_idle(self) -> None:
        context = _context([_tracker("t1", _jan(1), _jan(5))])
        layout = board_layout(context.trackers, context.lane_map, _jan(1), _jan(31), ViewMode.MONTHLY)
        state = DragController().handle(PointerEvent("pointer_down", x=900, y=20), context, layout)
        self.assertIs(state, IDLE)

    def test_pointers_are_tracked_independently(self) -> None:
        trackers = [_tracker("a", _jan(1), _jan(5)), _tracker("b", _jan(10), _jan(12))]
        context = _context(trackers)
        controller = DragController()
        controller.handle(PointerEvent("pointer_down", x=0, y=0, pointer_id=1, tracker_id="a"), context)
        controller.handle(PointerEvent("pointer_down", x=0, y=0, pointer_id=2, tracker_id="b"), context)
        controller.handle(PointerEvent("pointer_leave", pointer_id=1), context)
        self.assertIs(controller.state(1).phase, DragPhase.CANCELLED)
        self.assertIs(controller.state(2).phase, DragPhase.DRAGGING)


class DragHandlerTests(unittest.TestCase):
    def test_begin_is_ignored_unless_idle(self) -> None:
        tracker = _tracker("t1", _jan(1), _jan(5))
        dragging = begin_drag(IDLE, tracker, DragKind.MOVE, (0, 0), 0)
        self.assertIs(begin_drag(dragging, tracker, DragKind.RESIZE_END, (0, 0), 0), dragging)

    def test_resize_end_clamps_to_minimum_duration(self) -> None:
        tracker = _tracker("t1", _jan(1), _jan(5))
        context = _context([tracker])
        state = begin_drag(IDLE, tracker, DragKind.RESIZE_END, (200, 20), 0)
        state = drag_move(state, (-200, 20), context)
        assert state.session is not None
        self.assertEqual((state.session.preview_start, state.session.preview_end), (_jan(1), _jan(1)))

    def test_resize_start_moves_only_the_start(self) -> None:
        tracker = _tracker("t1", _jan(10), _jan(20))
        context = _context([tracker])
        state = begin_drag(IDLE, tracker, DragKind.RESIZE_START, (0, 20), 0)
        state = drag_move(state, (-120, 400), context)
        assert state.session is not None
        self.assertEqual((state.session.preview_start, state.session.preview_end), (_jan(7), _jan(20)))
        self.assertEqual(state.session.candidate_lane, 0)

    def test_resize_past_max_duration_clears_preview(self) -> None:
        tracker = _tracker("t1", _jan(1), _jan(5))
        context = _context([tracker], drag=DragConfig(max_duration_days=7))
        state = begin_drag(IDLE, tracker, DragKind.RESIZE_END, (200, 20), 0)
        state = drag_move(state, (400, 20), context)
        assert state.session is not None
        self.assertFalse(state.session.has_preview)
        ended = release(state, context)
        self.assertIs(ended.phase, DragPhase.CANCELLED)
        self.assertIsNone(ended.rejection)

    def test_drop_onto_major_overlap_is_rejected(self) -> None:
        a = _tracker("a", _jan(1), _jan(5))
        b = _tracker("b", _jan(10), _jan(14))
        context = _context([a, b])
        state = begin_drag(IDLE, b, DragKind.MOVE, (400, 20), 0)
        state = drag_move(state, (80, 20), context)
        assert state.session is not None
        self.assertEqual(state.session.preview_start, _jan(2))
        self.assertFalse(state.session.drop_valid)
        self.assertFalse(preview_hint(state).valid)

        ended = release(state, context)
        self.assertIs(ended.phase, DragPhase.CANCELLED)
        assert ended.rejection is not None
        self.assertIn("collision_detected", ended.rejection.codes())
        self.assertIs(settle(ended), IDLE)

    def test_lane_switch_follows_pointer_y(self) -> None:
        a = _tracker("a", _jan(1), _jan(5))
        b = _tracker("b", _jan(10), _jan(14))
        context = _context([a, b])
        state = begin_drag(IDLE, b, DragKind.MOVE, (400, 20), 0)
        state = drag_move(state, (80, 60), context)
        assert state.session is not None
        self.assertEqual(state.session.candidate_lane, 1)
        self.assertTrue(state.session.drop_valid)
        ended = release(state, context)
        assert ended.commit is not None
        self.assertEqual((ended.commit.lane, ended.commit.original_lane), (1, 0))

    def test_release_and_cancel_ignore_idle_state(self) -> None:
        context = _context([])
        self.assertIs(release(IDLE, context), IDLE)
        self.assertIs(cancel(IDLE), IDLE)
        self.assertFalse(preview_hint(IDLE).active)


if __name__ == "__main__":
    unittest.main()
