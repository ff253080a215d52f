from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional


EventType = Literal[
    "pointer_down",
    "pointer_move",
    "pointer_up",
    "pointer_leave",
    "key_down",
]

POINTER_EVENTS: tuple[str, ...] = ("pointer_down", "pointer_move", "pointer_up", "pointer_leave")


@dataclass(frozen=True)
class PointerEvent:
    event_type: EventType
    timestamp: float = 0.0
    x: Optional[float] = None
    y: Optional[float] = None
    pointer_id: int = 0
    tracker_id: Optional[str] = None
    key: Optional[str] = None

    def __post_init__(self) -> None:
        if self.event_type in ("pointer_down", "pointer_move") and (self.x is None or self.y is None):
            raise ValueError(f"{self.event_type} requires x and y")
        if self.event_type == "key_down" and not self.key:
            raise ValueError("key_down requires key")

    @property
    def position(self) -> tuple[float, float]:
        return (float(self.x or 0.0), float(self.y or 0.0))

    @property
    def is_escape(self) -> bool:
        return self.event_type == "key_down" and self.key == "Escape"
