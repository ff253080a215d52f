"""Pointer interaction, pixel geometry and export for the tracker board."""

from .board import TimelineBoard
from .drag import (
    DragCommit,
    DragContext,
    DragController,
    DragKind,
    DragPhase,
    DragSession,
    DragState,
    PreviewHint,
    begin_drag,
    cancel,
    drag_kind_at,
    drag_move,
    preview_hint,
    release,
    settle,
)
from .events import PointerEvent
from .export import BoardExportBundle, BoardRenderConfig, export_board_bundle, render_board_ascii, render_board_markdown
from .geometry import (
    PIXELS_PER_DAY,
    BoardLayout,
    PixelBox,
    board_layout,
    box_at,
    date_at_x,
    lane_at_y,
    pixels_per_day,
    tracker_box,
)

__all__ = [
    "BoardExportBundle",
    "BoardLayout",
    "BoardRenderConfig",
    "DragCommit",
    "DragContext",
    "DragController",
    "DragKind",
    "DragPhase",
    "DragSession",
    "DragState",
    "PIXELS_PER_DAY",
    "PixelBox",
    "PointerEvent",
    "PreviewHint",
    "TimelineBoard",
    "begin_drag",
    "board_layout",
    "box_at",
    "cancel",
    "date_at_x",
    "drag_kind_at",
    "drag_move",
    "export_board_bundle",
    "lane_at_y",
    "pixels_per_day",
    "preview_hint",
    "release",
    "render_board_ascii",
    "render_board_markdown",
    "settle",
    "tracker_box",
]
