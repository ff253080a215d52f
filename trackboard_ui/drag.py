"""Drag and resize gestures as a value-typed state machine.

Handlers take a ``DragState`` and return the next one; nothing here talks to
the store. A release that passes validation ends in ``COMMITTING`` carrying a
``DragCommit`` for the caller to persist, then ``settle`` returns to idle.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from trackboard_core.collisions import Candidate, CollisionOptions, CollisionReport, detect_collisions
from trackboard_core.config import DragConfig
from trackboard_core.dates import ViewMode, inclusive_days
from trackboard_core.lanes import LaneMap
from trackboard_core.schema import Tracker
from trackboard_core.snapping import (
    SnapConfig,
    SnapConstraints,
    SnapResult,
    snap_config_for_view_mode,
    snap_date,
    snap_feedback,
    snap_range,
)
from trackboard_core.validation import TrackerValidator, ValidationResult

from .events import PointerEvent
from .geometry import BoardLayout, box_at, lane_at_y, pixels_per_day

LOGGER = logging.getLogger(__name__)

Point = tuple[float, float]


class DragKind(str, Enum):
    MOVE = "move"
    RESIZE_START = "resize_start"
    RESIZE_END = "resize_end"


class DragPhase(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DragContext:
    view_mode: ViewMode
    trackers: tuple[Tracker, ...]
    lane_map: LaneMap
    snap: SnapConfig | None = None
    constraints: SnapConstraints | None = None
    drag: DragConfig = field(default_factory=DragConfig)
    collisions: CollisionOptions = field(default_factory=CollisionOptions)
    validator: TrackerValidator = field(default_factory=TrackerValidator)
    pixels_per_day: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "view_mode", ViewMode(self.view_mode))
        object.__setattr__(self, "trackers", tuple(self.trackers))
        if self.pixels_per_day is not None and self.pixels_per_day <= 0:
            raise ValueError("pixels_per_day must be > 0")

    @property
    def ppd(self) -> float:
        return self.pixels_per_day or pixels_per_day(self.view_mode)

    @property
    def snap_config(self) -> SnapConfig:
        return self.snap or snap_config_for_view_mode(self.view_mode)

    def tracker(self, tracker_id: str) -> Tracker | None:
        return next((t for t in self.trackers if t.tracker_id == tracker_id), None)


@dataclass(frozen=True)
class DragSession:
    tracker: Tracker
    kind: DragKind
    origin: Point
    original_lane: int
    pointer: Point
    candidate_lane: int
    preview_start: dt.date | None = None
    preview_end: dt.date | None = None
    snap: SnapResult | None = None
    collision: CollisionReport | None = None

    @property
    def has_preview(self) -> bool:
        return self.preview_start is not None and self.preview_end is not None

    @property
    def drop_valid(self) -> bool:
        return self.has_preview and not (self.collision is not None and self.collision.has_collision)


@dataclass(frozen=True)
class DragCommit:
    tracker: Tracker
    kind: DragKind
    start_date: dt.date
    end_date: dt.date
    lane: int
    original_lane: int
    validation: ValidationResult

    @property
    def changed(self) -> bool:
        return (
            self.start_date != self.tracker.start_date
            or self.end_date != self.tracker.end_date
            or self.lane != self.original_lane
        )

    def as_partial(self) -> dict[str, str]:
        return {"start_date": self.start_date.isoformat(), "end_date": self.end_date.isoformat()}


@dataclass(frozen=True)
class DragState:
    phase: DragPhase = DragPhase.IDLE
    session: DragSession | None = None
    commit: DragCommit | None = None
    rejection: ValidationResult | None = None

    def __post_init__(self) -> None:
        if self.phase is DragPhase.DRAGGING and self.session is None:
            raise ValueError("dragging state requires a session")
        if self.phase is DragPhase.COMMITTING and self.commit is None:
            raise ValueError("committing state requires a commit")


@dataclass(frozen=True)
class PreviewHint:
    active: bool
    valid: bool
    snap_intensity: float
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    lane: int | None = None
    message: str = ""


IDLE = DragState()


def drag_kind_at(pointer_x: float, box_left: float, box_width: float, handle_width: float = 8.0) -> DragKind | None:
    """Edge zones resize, the body moves; ``None`` outside the box."""
    right = box_left + box_width
    if pointer_x < box_left or pointer_x > right:
        return None
    if pointer_x <= box_left + handle_width:
        return DragKind.RESIZE_START
    if pointer_x >= right - handle_width:
        return DragKind.RESIZE_END
    return DragKind.MOVE


def begin_drag(state: DragState, tracker: Tracker, kind: DragKind, pointer: Point, lane: int) -> DragState:
    """Start a session; ignored unless idle."""
    if state.phase is not DragPhase.IDLE:
        return state
    session = DragSession(
        tracker=tracker,
        kind=DragKind(kind),
        origin=pointer,
        original_lane=lane,
        pointer=pointer,
        candidate_lane=lane,
    )
    LOGGER.debug("begin %s on %s", session.kind.value, tracker.tracker_id)
    return DragState(phase=DragPhase.DRAGGING, session=session)


def drag_move(state: DragState, pointer: Point, context: DragContext) -> DragState:
    if state.phase is not DragPhase.DRAGGING or state.session is None:
        return state
    session = state.session
    tracker = session.tracker
    days = round((pointer[0] - session.origin[0]) / context.ppd)
    min_days = context.drag.min_duration_days
    snap_cfg = context.snap_config

    if session.kind is DragKind.MOVE:
        shift = dt.timedelta(days=days)
        snapped = snap_range(
            tracker.start_date + shift,
            tracker.end_date + shift,
            context.view_mode,
            dataclasses.replace(snap_cfg, preserve_duration=True),
            context.constraints,
        )
        start, end, snap = snapped.start, snapped.end, snapped.start_snap
    elif session.kind is DragKind.RESIZE_START:
        latest = tracker.end_date - dt.timedelta(days=min_days - 1)
        raw = min(tracker.start_date + dt.timedelta(days=days), latest)
        snap = snap_date(raw, context.view_mode, snap_cfg, context.constraints)
        start, end = min(snap.snapped, latest), tracker.end_date
    else:
        earliest = tracker.start_date + dt.timedelta(days=min_days - 1)
        raw = max(tracker.end_date + dt.timedelta(days=days), earliest)
        snap = snap_date(raw, context.view_mode, snap_cfg, context.constraints)
        start, end = tracker.start_date, max(snap.snapped, earliest)

    lane = session.original_lane
    if context.drag.allow_lane_switch and session.kind is DragKind.MOVE:
        lane = lane_at_y(pointer[1], context.view_mode, context.drag.lane_spacing_px)

    max_days = context.drag.max_duration_days
    if max_days is not None and inclusive_days(start, end) > max_days:
        moved = dataclasses.replace(
            session,
            pointer=pointer,
            candidate_lane=lane,
            preview_start=None,
            preview_end=None,
            snap=None,
            collision=None,
        )
        return dataclasses.replace(state, session=moved)

    candidate = Candidate(start_date=start, end_date=end, tracker_id=tracker.tracker_id, title=tracker.title)
    report = detect_collisions(candidate, lane, context.trackers, context.lane_map, context.collisions)
    moved = dataclasses.replace(
        session,
        pointer=pointer,
        candidate_lane=lane,
        preview_start=start,
        preview_end=end,
        snap=snap,
        collision=report,
    )
    return dataclasses.replace(state, session=moved)


def release(state: DragState, context: DragContext) -> DragState:
    """Pointer-up: validate the preview once and either commit or cancel."""
    if state.phase is not DragPhase.DRAGGING or state.session is None:
        return state
    session = state.session
    start, end = session.preview_start, session.preview_end
    if start is None or end is None:
        LOGGER.debug("release without preview on %s", session.tracker.tracker_id)
        return DragState(phase=DragPhase.CANCELLED)

    if session.kind is DragKind.MOVE:
        result = context.validator.validate_drag(
            session.tracker,
            start,
            end,
            session.candidate_lane,
            context.trackers,
            context.lane_map,
        )
    else:
        result = context.validator.validate_resize(
            session.tracker,
            start,
            end,
            context.trackers,
            context.lane_map,
        )
    if not result.is_valid:
        LOGGER.info("rejected %s on %s: %s", session.kind.value, session.tracker.tracker_id, ", ".join(result.codes()))
        return DragState(phase=DragPhase.CANCELLED, rejection=result)

    commit = DragCommit(
        tracker=session.tracker,
        kind=session.kind,
        start_date=start,
        end_date=end,
        lane=session.candidate_lane,
        original_lane=session.original_lane,
        validation=result,
    )
    return DragState(phase=DragPhase.COMMITTING, commit=commit)


def cancel(state: DragState) -> DragState:
    if state.phase is not DragPhase.DRAGGING:
        return state
    return DragState(phase=DragPhase.CANCELLED)


def settle(state: DragState) -> DragState:
    if state.phase in (DragPhase.COMMITTING, DragPhase.CANCELLED):
        return IDLE
    return state


def preview_hint(state: DragState) -> PreviewHint:
    session = state.session
    if state.phase is not DragPhase.DRAGGING or session is None:
        return PreviewHint(active=False, valid=False, snap_intensity=0.0)
    feedback = snap_feedback(session.snap) if session.snap is not None else None
    return PreviewHint(
        active=True,
        valid=session.drop_valid,
        snap_intensity=feedback.intensity if feedback is not None else 0.0,
        start_date=session.preview_start,
        end_date=session.preview_end,
        lane=session.candidate_lane,
        message=feedback.message if feedback is not None else "",
    )


class DragController:
    """Holds one ``DragState`` per pointer and applies events in arrival order."""

    def __init__(self) -> None:
        self._states: dict[int, DragState] = {}

    def state(self, pointer_id: int = 0) -> DragState:
        return self._states.get(pointer_id, IDLE)

    def handle(self, event: PointerEvent, context: DragContext, layout: BoardLayout | None = None) -> DragState:
        current = self.state(event.pointer_id)
        if event.event_type == "pointer_down":
            nxt = self._pointer_down(current, event, context, layout)
        elif event.event_type == "pointer_move":
            nxt = drag_move(current, event.position, context)
        elif event.event_type == "pointer_up":
            nxt = release(current, context)
        elif event.event_type == "pointer_leave" or event.is_escape:
            nxt = cancel(current)
        else:
            nxt = current
        self._states[event.pointer_id] = nxt
        return nxt

    def settle(self, pointer_id: int = 0) -> DragState:
        nxt = settle(self.state(pointer_id))
        self._states[pointer_id] = nxt
        return nxt

    def active_sessions(self) -> Sequence[DragSession]:
        return [s.session for s in self._states.values() if s.phase is DragPhase.DRAGGING and s.session is not None]

    def _pointer_down(
        self,
        current: DragState,
        event: PointerEvent,
        context: DragContext,
        layout: BoardLayout | None,
    ) -> DragState:
        x, y = event.position
        box = None
        if event.tracker_id is not None and layout is not None:
            box = next((b for b in layout.boxes if b.tracker_id == event.tracker_id), None)
        elif layout is not None:
            box = box_at(x, y, layout)
        tracker_id = event.tracker_id or (box.tracker_id if box is not None else None)
        tracker = context.tracker(tracker_id) if tracker_id else None
        if tracker is None:
            return current
        kind = DragKind.MOVE
        if box is not None:
            kind = drag_kind_at(x, box.left, box.width, context.drag.handle_width_px) or DragKind.MOVE
        lane = context.lane_map.lane_of(tracker.tracker_id)
        return begin_drag(current, tracker, kind, event.position, 0 if lane is None else lane)
