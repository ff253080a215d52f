from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from trackboard_core.dates import ranges_overlap
from trackboard_core.lanes import LaneMap
from trackboard_core.schema import STATUS_FILL, Tracker, TrackerStatus

STATUS_COLORS: dict[TrackerStatus, tuple[int, int, int]] = {
    TrackerStatus.NOT_STARTED: (100, 116, 139),
    TrackerStatus.IN_PROGRESS: (59, 130, 246),
    TrackerStatus.COMPLETED: (34, 197, 94),
}


@dataclass(frozen=True)
class BoardRenderConfig:
    day_column_width: int = 1
    show_legend: bool = True
    title: str = "Tracker board"

    def __post_init__(self) -> None:
        if self.day_column_width < 1:
            raise ValueError("day_column_width must be >= 1")


@dataclass(frozen=True)
class BoardExportBundle:
    ascii_board: Path
    markdown_board: Path
    png_board: Path

    def as_dict(self) -> dict[str, str]:
        return {
            "ascii_board": str(self.ascii_board),
            "markdown_board": str(self.markdown_board),
            "png_board": str(self.png_board),
        }


def render_board_ascii(
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    start: dt.date,
    end: dt.date,
    config: BoardRenderConfig | None = None,
) -> str:
    cfg = config or BoardRenderConfig()
    if end < start:
        raise ValueError("end must be >= start")
    days = (end - start).days + 1
    width = cfg.day_column_width

    lines: list[str] = [cfg.title, f"Range: {start.isoformat()} .. {end.isoformat()} | lanes={lane_map.lane_count}"]
    if cfg.show_legend:
        lines.append("Status fill: " + ", ".join(f"{status.value}={fill}" for status, fill in STATUS_FILL.items()))
    lines.append(_build_day_header(start, days, width))

    by_lane = _visible_by_lane(trackers, lane_map, start, end)
    for lane in range(lane_map.lane_count):
        cells = [" " * width for _ in range(days)]
        members = by_lane.get(lane, [])
        for tracker in members:
            first = max(0, (tracker.start_date - start).days)
            last = min(days - 1, (tracker.end_date - start).days)
            for idx in range(first, last + 1):
                cells[idx] = STATUS_FILL[tracker.status] * width
        label = f"lane {lane:02d}"
        ids = ",".join(t.tracker_id for t in members) or "-"
        lines.append(f"{label:<8} |{''.join(cells)}| {ids}")
    if lane_map.lane_count == 0:
        lines.append("(no trackers)")
    return "\n".join(lines) + "\n"


def render_board_markdown(
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    start: dt.date,
    end: dt.date,
    config: BoardRenderConfig | None = None,
) -> str:
    cfg = config or BoardRenderConfig()
    lines: list[str] = [f"# {cfg.title}", "", f"Range: `{start.isoformat()}` .. `{end.isoformat()}`", ""]
    lines.append("```text")
    lines.append(render_board_ascii(trackers, lane_map, start, end, cfg).rstrip())
    lines.append("```")
    lines.append("")

    by_lane = _visible_by_lane(trackers, lane_map, start, end)
    if not by_lane:
        lines.append("_No trackers in range._")
        lines.append("")
        return "\n".join(lines)

    lines.append("| Lane | Tracker | Title | Start | End | Status | Priority |")
    lines.append("|---|---|---|---|---|---|---|")
    for lane in sorted(by_lane):
        for tracker in by_lane[lane]:
            lines.append(
                f"| {lane} | `{tracker.tracker_id}` | {tracker.title} | {tracker.start_date.isoformat()} | "
                f"{tracker.end_date.isoformat()} | {tracker.status.value} | {tracker.priority.value} |"
            )
    lines.append("")
    return "\n".join(lines)


def export_board_bundle(
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    start: dt.date,
    end: dt.date,
    *,
    out_dir: str | Path,
    prefix: str = "board",
    config: BoardRenderConfig | None = None,
) -> BoardExportBundle:
    root = Path(out_dir)
    root.mkdir(parents=True, exist_ok=True)

    path_ascii = root / f"{prefix}_lanes.txt"
    path_markdown = root / f"{prefix}_lanes.md"
    path_png = root / f"{prefix}_lanes.png"

    path_ascii.write_text(render_board_ascii(trackers, lane_map, start, end, config), encoding="utf-8")
    path_markdown.write_text(render_board_markdown(trackers, lane_map, start, end, config), encoding="utf-8")
    _render_board_png(trackers, lane_map, start, end, out_path=path_png)

    return BoardExportBundle(ascii_board=path_ascii, markdown_board=path_markdown, png_board=path_png)


def _render_board_png(
    trackers: Sequence[Tracker],
    lane_map: LaneMap,
    start: dt.date,
    end: dt.date,
    *,
    out_path: Path,
    day_px: int = 16,
    lane_px: int = 24,
    spacing: int = 4,
    padding: int = 16,
    header_px: int = 20,
    bg: tuple[int, int, int] = (17, 24, 39),
    grid: tuple[int, int, int] = (51, 65, 85),
    fg: tuple[int, int, int] = (226, 232, 240),
) -> None:
    days = (end - start).days + 1
    lanes = max(1, lane_map.lane_count)
    width = max(320, padding * 2 + days * day_px)
    height = max(120, padding * 2 + header_px + lanes * (lane_px + spacing))
    image = Image.new("RGB", (width, height), color=bg)
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default()

    top = padding + header_px
    for idx in range(days):
        x = padding + idx * day_px
        day = start + dt.timedelta(days=idx)
        draw.line([(x, top), (x, height - padding)], fill=grid)
        if day.day == 1 or idx == 0:
            draw.text((x + 2, padding), day.strftime("%m/%d"), fill=fg, font=font)

    for lane, members in _visible_by_lane(trackers, lane_map, start, end).items():
        y0 = top + lane * (lane_px + spacing)
        for tracker in members:
            first = max(0, (tracker.start_date - start).days)
            last = min(days - 1, (tracker.end_date - start).days)
            x0 = padding + first * day_px
            x1 = padding + (last + 1) * day_px - 1
            draw.rectangle([(x0, y0), (x1, y0 + lane_px)], fill=STATUS_COLORS[tracker.status], outline=fg)
            draw.text((x0 + 3, y0 + 5), tracker.title[: max(1, (x1 - x0) // 7)], fill=fg, font=font)

    image.save(out_path)


def _visible_by_lane(
    trackers: Sequence[Tracker], lane_map: LaneMap, start: dt.date, end: dt.date
) -> dict[int, list[Tracker]]:
    grouped: dict[int, list[Tracker]] = {}
    for tracker in sorted(trackers, key=lambda t: (t.start_date, t.tracker_id)):
        lane = lane_map.lane_of(tracker.tracker_id)
        if lane is None or not ranges_overlap(tracker.start_date, tracker.end_date, start, end):
            continue
        grouped.setdefault(lane, []).append(tracker)
    return grouped


def _build_day_header(start: dt.date, days: int, width: int) -> str:
    parts = [str((start + dt.timedelta(days=idx)).day % 10).center(width) for idx in range(days)]
    return "Days:".ljust(10) + "".join(parts)
