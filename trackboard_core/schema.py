from __future__ import annotations

import dataclasses
import datetime as dt
import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping


class TrackerType(str, Enum):
    PROJECT = "project"
    FEATURE = "feature"
    BUG = "bug"


class TrackerStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


class TrackerPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_STATUS_RANK: dict[TrackerStatus, int] = {
    TrackerStatus.NOT_STARTED: 0,
    TrackerStatus.IN_PROGRESS: 1,
    TrackerStatus.COMPLETED: 2,
}

_PRIORITY_RANK: dict[TrackerPriority, int] = {
    TrackerPriority.LOW: 0,
    TrackerPriority.MEDIUM: 1,
    TrackerPriority.HIGH: 2,
    TrackerPriority.CRITICAL: 3,
}

TRACKER_TYPES: tuple[str, ...] = tuple(t.value for t in TrackerType)
TRACKER_STATUSES: tuple[str, ...] = tuple(s.value for s in TrackerStatus)
TRACKER_PRIORITIES: tuple[str, ...] = tuple(p.value for p in TrackerPriority)

STATUS_FILL: dict[TrackerStatus, str] = {
    TrackerStatus.NOT_STARTED: "~",
    TrackerStatus.IN_PROGRESS: "#",
    TrackerStatus.COMPLETED: "=",
}


@dataclass(frozen=True)
class Tracker:
    tracker_id: str
    project_id: str
    title: str
    start_date: dt.date
    end_date: dt.date
    tracker_type: TrackerType = TrackerType.FEATURE
    status: TrackerStatus = TrackerStatus.NOT_STARTED
    priority: TrackerPriority = TrackerPriority.MEDIUM
    description: str = ""
    linked_items: tuple[str, ...] = ()
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    def __post_init__(self) -> None:
        if not self.tracker_id.strip():
            raise ValueError("Tracker.tracker_id must be non-empty")
        if not self.title.strip():
            raise ValueError("Tracker.title must be non-empty")
        if self.end_date < self.start_date:
            raise ValueError("Tracker.end_date must be >= start_date")
        # Coerce plain strings so callers can pass wire values.
        object.__setattr__(self, "tracker_type", TrackerType(self.tracker_type))
        object.__setattr__(self, "status", TrackerStatus(self.status))
        object.__setattr__(self, "priority", TrackerPriority(self.priority))

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def with_range(self, start_date: dt.date, end_date: dt.date) -> "Tracker":
        return dataclasses.replace(self, start_date=start_date, end_date=end_date)


_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "tracker_id": ("id", "tracker_id", "trackerId"),
    "project_id": ("project_id", "projectId"),
    "title": ("title",),
    "description": ("description",),
    "tracker_type": ("type", "tracker_type", "trackerType"),
    "start_date": ("start_date", "startDate", "start"),
    "end_date": ("end_date", "endDate", "end"),
    "status": ("status",),
    "priority": ("priority",),
    "linked_items": ("linked_items", "linkedItems"),
    "created_at": ("created_at", "createdAt"),
    "updated_at": ("updated_at", "updatedAt"),
}


def pick_field(payload: Mapping[str, Any], field_name: str) -> Any:
    """Return the first alias of ``field_name`` present in ``payload`` (or None)."""
    for key in _FIELD_ALIASES.get(field_name, (field_name,)):
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


def normalize_partial(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Map camelCase/alias keys of a partial tracker onto canonical field names."""
    out: dict[str, Any] = {}
    for field_name in _FIELD_ALIASES:
        value = pick_field(payload, field_name)
        if value is not None:
            out[field_name] = value
    return out


def tracker_from_dict(payload: Mapping[str, Any]) -> Tracker:
    start = coerce_date(pick_field(payload, "start_date"))
    end = coerce_date(pick_field(payload, "end_date"))
    if start is None or end is None:
        raise ValueError("tracker payload requires start and end dates")
    return Tracker(
        tracker_id=str(pick_field(payload, "tracker_id") or ""),
        project_id=str(pick_field(payload, "project_id") or ""),
        title=str(pick_field(payload, "title") or ""),
        description=str(pick_field(payload, "description") or ""),
        tracker_type=TrackerType(str(pick_field(payload, "tracker_type") or TrackerType.FEATURE.value)),
        start_date=start,
        end_date=end,
        status=TrackerStatus(str(pick_field(payload, "status") or TrackerStatus.NOT_STARTED.value)),
        priority=TrackerPriority(str(pick_field(payload, "priority") or TrackerPriority.MEDIUM.value)),
        linked_items=_coerce_string_tuple(pick_field(payload, "linked_items")),
        created_at=coerce_datetime(pick_field(payload, "created_at")),
        updated_at=coerce_datetime(pick_field(payload, "updated_at")),
    )


def tracker_to_dict(tracker: Tracker) -> dict[str, Any]:
    return {
        "id": tracker.tracker_id,
        "project_id": tracker.project_id,
        "title": tracker.title,
        "description": tracker.description,
        "type": tracker.tracker_type.value,
        "start_date": tracker.start_date.isoformat(),
        "end_date": tracker.end_date.isoformat(),
        "status": tracker.status.value,
        "priority": tracker.priority.value,
        "linked_items": list(tracker.linked_items),
        "created_at": tracker.created_at.isoformat() if tracker.created_at else None,
        "updated_at": tracker.updated_at.isoformat() if tracker.updated_at else None,
    }


def apply_partial(tracker: Tracker, partial: Mapping[str, Any]) -> Tracker:
    """Return ``tracker`` with the canonical fields of ``partial`` applied."""
    changes = normalize_partial(partial)
    changes.pop("tracker_id", None)
    for key in ("start_date", "end_date"):
        if key in changes:
            changes[key] = coerce_date(changes[key])
    for key in ("created_at", "updated_at"):
        if key in changes:
            changes[key] = coerce_datetime(changes[key])
    if "linked_items" in changes:
        changes["linked_items"] = _coerce_string_tuple(changes["linked_items"])
    return dataclasses.replace(tracker, **changes)


def load_trackers(path: str | Path) -> tuple[Tracker, ...]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(payload, Mapping):
        payload = payload.get("trackers", [])
    if not isinstance(payload, list):
        raise TypeError("Tracker file must hold a list or an object with `trackers`")
    return tuple(tracker_from_dict(item) for item in payload if isinstance(item, Mapping))


def coerce_date(raw: object) -> dt.date | None:
    if raw is None:
        return None
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    return dt.date.fromisoformat(text[:10])


def coerce_datetime(raw: object) -> dt.datetime | None:
    if raw is None:
        return None
    if isinstance(raw, dt.datetime):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    return dt.datetime.fromisoformat(text.replace("Z", "+00:00"))


def _coerce_string_tuple(raw: object) -> tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        text = raw.strip()
        return (text,) if text else ()
    if isinstance(raw, Iterable):
        out: list[str] = []
        for item in raw:
            value = str(item).strip()
            if value:
                out.append(value)
        return tuple(out)
    raise TypeError("Expected string or iterable of strings")
