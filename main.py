from __future__ import annotations

import argparse
import dataclasses
import datetime as dt
import json
import logging
from pathlib import Path
from typing import Any, Sequence

from trackboard_core import (
    BoardConfig,
    ViewMode,
    assign_lanes,
    check_timeline_integrity,
    format_errors,
    format_warnings,
    load_board_config,
    load_trackers,
    optimization_recommendations,
    optimize_lanes,
    recommend_lane_count,
    summarize,
    visible_range,
)
from trackboard_core.validation import TrackerValidator
from trackboard_sync import JsonlAuditSink, SQLiteAuditSink
from trackboard_ui import BoardRenderConfig, export_board_bundle, render_board_ascii


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="trackboard")
    parser.add_argument("--config", type=Path, default=None, help="Board config TOML.")
    parser.add_argument("--log-level", default="WARNING", choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    sub = parser.add_subparsers(dest="command", required=True)

    lanes = sub.add_parser("lanes", help="Assign lanes and print the board.")
    lanes.add_argument("trackers", type=Path)
    lanes.add_argument("--json", action="store_true", help="Print the id -> lane mapping as JSON.")

    check = sub.add_parser("check", help="Run the lane integrity check; exit 1 on errors.")
    check.add_argument("trackers", type=Path)

    optimize = sub.add_parser("optimize", help="Report lane packing metrics and recommendations.")
    optimize.add_argument("trackers", type=Path)
    optimize.add_argument("--max-lanes", type=int, default=20, help="Largest lane count to consider.")

    validate = sub.add_parser("validate", help="Validate every tracker record in a JSON file.")
    validate.add_argument("trackers", type=Path)
    validate.add_argument("--today", type=dt.date.fromisoformat, default=None)

    export = sub.add_parser("export", help="Write ASCII, Markdown and PNG lane boards.")
    export.add_argument("trackers", type=Path)
    export.add_argument("--out", type=Path, required=True)
    export.add_argument("--prefix", default="board")
    export.add_argument("--anchor", type=dt.date.fromisoformat, default=None)
    export.add_argument("--view-mode", default=None, choices=[m.value for m in ViewMode])

    report = sub.add_parser("audit-report", help="Print sync audit summary from SQLite or JSONL sink.")
    report.add_argument("--audit-sqlite", type=Path, default=None)
    report.add_argument("--audit-jsonl", type=Path, default=None)

    prune = sub.add_parser("audit-prune", help="Prune old sync audit rows to max row count.")
    prune.add_argument("--audit-sqlite", type=Path, default=None)
    prune.add_argument("--audit-jsonl", type=Path, default=None)
    prune.add_argument("--max-rows", type=int, required=True)

    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    config = load_board_config(args.config) if args.config is not None else BoardConfig()

    if args.command == "lanes":
        trackers = load_trackers(args.trackers)
        lane_map = assign_lanes(trackers)
        if args.json:
            print(json.dumps(dict(lane_map.assignments), indent=2, sort_keys=True))
            return 0
        if not trackers:
            print("no trackers")
            return 0
        start = min(t.start_date for t in trackers)
        end = max(t.end_date for t in trackers)
        print(render_board_ascii(trackers, lane_map, start, end), end="")
        return 0

    if args.command == "check":
        trackers = load_trackers(args.trackers)
        lane_map = assign_lanes(trackers)
        integrity = check_timeline_integrity(trackers, lane_map)
        for issue in integrity.issues:
            level = "error" if issue.is_error else "warning"
            print(f"{level}: {issue.message}")
        for suggestion in integrity.suggestions:
            print(f"suggestion: {suggestion.tracker_id} -> lane {suggestion.suggested_lane}")
        print(f"lanes={lane_map.lane_count} trackers={len(trackers)} ok={integrity.ok}")
        return 0 if integrity.ok else 1

    if args.command == "optimize":
        trackers = load_trackers(args.trackers)
        result = optimize_lanes(trackers)
        advice = recommend_lane_count(trackers, max_acceptable_lanes=args.max_lanes)
        payload = {
            "lanes_before": result.original.lane_count,
            "lanes_after": result.optimized.lane_count,
            "metrics": dataclasses.asdict(result.metrics),
            "recommended_lane_count": advice.lane_count,
            "recommendations": [dataclasses.asdict(item) for item in optimization_recommendations(result)],
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    if args.command == "validate":
        validator = TrackerValidator(config.validation, today=args.today, collision_options=config.collisions)
        failures = 0
        for index, record in enumerate(_load_records(args.trackers)):
            result = validator.validate_tracker(record)
            label = record.get("id") or record.get("tracker_id") or f"#{index}"
            print(f"{label}: {summarize(result)}")
            for line in format_errors(result.errors):
                print(f"  error: {line}")
            for line in format_warnings(result.warnings):
                print(f"  warning: {line}")
            if not result.is_valid:
                failures += 1
        return 1 if failures else 0

    if args.command == "export":
        trackers = load_trackers(args.trackers)
        lane_map = assign_lanes(trackers)
        if args.anchor is not None:
            info = visible_range(args.anchor, ViewMode(args.view_mode or ViewMode.MONTHLY.value))
            start, end = info.start, info.end
        elif trackers:
            start = min(t.start_date for t in trackers)
            end = max(t.end_date for t in trackers)
        else:
            start = end = dt.date.today()
        bundle = export_board_bundle(
            trackers,
            lane_map,
            start,
            end,
            out_dir=args.out,
            prefix=args.prefix,
            config=BoardRenderConfig(title=args.trackers.stem),
        )
        print(json.dumps(bundle.as_dict(), indent=2, sort_keys=True))
        return 0

    if args.command == "audit-report":
        audit_sink = _build_audit_sink(args.audit_sqlite, args.audit_jsonl)
        if audit_sink is None:
            raise RuntimeError("one of --audit-sqlite/--audit-jsonl is required")
        try:
            print(json.dumps(audit_sink.summarize(), indent=2, sort_keys=True))
        finally:
            if hasattr(audit_sink, "close"):
                audit_sink.close()
        return 0

    if args.command == "audit-prune":
        audit_sink = _build_audit_sink(args.audit_sqlite, args.audit_jsonl)
        if audit_sink is None:
            raise RuntimeError("one of --audit-sqlite/--audit-jsonl is required")
        try:
            deleted = audit_sink.prune(max_rows=args.max_rows)
            print(f"pruned rows={deleted}")
        finally:
            if hasattr(audit_sink, "close"):
                audit_sink.close()
        return 0

    raise RuntimeError(f"unsupported command: {args.command}")


def _load_records(path: Path) -> list[dict[str, Any]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("trackers", [])
    if not isinstance(payload, list):
        raise TypeError("Tracker file must hold a list or an object with `trackers`")
    return [item for item in payload if isinstance(item, dict)]


def _build_audit_sink(audit_sqlite: Path | None, audit_jsonl: Path | None):
    if audit_sqlite is not None:
        return SQLiteAuditSink(audit_sqlite)
    if audit_jsonl is not None:
        return JsonlAuditSink(audit_jsonl)
    return None


if __name__ == "__main__":
    raise SystemExit(main())
