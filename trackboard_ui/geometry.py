from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from typing import Sequence

from trackboard_core.dates import ViewMode
from trackboard_core.lanes import LaneMap, lane_height
from trackboard_core.schema import Tracker

PIXELS_PER_DAY: dict[ViewMode, float] = {
    ViewMode.WEEKLY: 120.0,
    ViewMode.MONTHLY: 40.0,
    ViewMode.QUARTERLY: 15.0,
}
LANE_SPACING_PX = 4.0


def pixels_per_day(view_mode: ViewMode) -> float:
    return PIXELS_PER_DAY[ViewMode(view_mode)]


@dataclass(frozen=True)
class PixelBox:
    tracker_id: str
    lane: int
    left: float
    top: float
    width: float
    height: float
    visible: bool = True
    clip_left: float = 0.0
    clip_right: float = 0.0

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom


@dataclass(frozen=True)
class BoardLayout:
    boxes: tuple[PixelBox, ...]
    total_width: float
    total_height: float

    @property
    def visible_count(self) -> int:
        return sum(1 for box in self.boxes if box.visible)


def x_for_date(value: dt.date, viewport_start: dt.date, ppd: float) -> float:
    return (value - viewport_start).days * ppd


def date_at_x(x: float, viewport_start: dt.date, ppd: float) -> dt.date:
    if ppd <= 0:
        raise ValueError("pixels per day must be > 0")
    return viewport_start + dt.timedelta(days=math.floor(x / ppd))


def lane_pitch(view_mode: ViewMode, spacing: float = LANE_SPACING_PX) -> float:
    return lane_height(view_mode) + spacing


def lane_at_y(y: float, view_mode: ViewMode, spacing: float = LANE_SPACING_PX) -> int:
    return max(0, math.floor(y / lane_pitch(view_mode, spacing)))


def tracker_box(
    tracker: Tracker,
    lane: int,
    viewport_start: dt.date,
    viewport_end: dt.date,
    view_mode: ViewMode,
    *,
    spacing: float = LANE_SPACING_PX,
) -> PixelBox:
    ppd = pixels_per_day(view_mode)
    height = float(lane_height(view_mode))
    left = x_for_date(tracker.start_date, viewport_start, ppd)
    width = max(tracker.duration_days * ppd, ppd)
    viewport_right = ((viewport_end - viewport_start).days + 1) * ppd
    return PixelBox(
        tracker_id=tracker.tracker_id,
        lane=lane,
        left=left,
        top=lane * (height + spacing) + spacing,
        width=width,
        height=height,
        visible=not (tracker.end_date < viewport_start or tracker.start_date > viewport_end),
        clip_left=max(0.0, -left),
        clip_right=max(0.0, left + width - viewport_right),
    )


def board_layout(
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    viewport_start: dt.date,
    viewport_end: dt.date,
    view_mode: ViewMode,
    *,
    spacing: float = LANE_SPACING_PX,
) -> BoardLayout:
    boxes = tuple(
        tracker_box(
            tracker,
            lane_map.lane_of(tracker.tracker_id) or 0,
            viewport_start,
            viewport_end,
            view_mode,
            spacing=spacing,
        )
        for tracker in trackers
    )
    height = lane_height(view_mode)
    return BoardLayout(
        boxes=boxes,
        total_width=((viewport_end - viewport_start).days + 1) * pixels_per_day(view_mode),
        total_height=lane_map.lane_count * (height + spacing) + spacing,
    )


def box_at(x: float, y: float, layout: BoardLayout) -> PixelBox | None:
    """Topmost visible box under the point; higher lanes render on top."""
    hits = [box for box in layout.boxes if box.visible and box.contains(x, y)]
    if not hits:
        return None
    return max(hits, key=lambda box: box.lane)
