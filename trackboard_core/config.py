from __future__ import annotations

import dataclasses
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .collisions import CollisionOptions
from .dates import ViewMode
from .snapping import SnapConfig, snap_config_for_view_mode
from .validation import ValidationConfig

LOGGER = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised for unreadable or malformed board configuration."""


@dataclass(frozen=True)
class BackoffConfig:
    max_retries: int = 3
    inline_attempts: int = 2
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 10.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        if self.inline_attempts < 1:
            raise ValueError("inline_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if self.jitter < 0:
            raise ValueError("jitter must be >= 0")


@dataclass(frozen=True)
class DragConfig:
    handle_width_px: float = 8.0
    lane_spacing_px: float = 4.0
    allow_lane_switch: bool = True
    min_duration_days: int = 1
    max_duration_days: int | None = None

    def __post_init__(self) -> None:
        if self.handle_width_px <= 0:
            raise ValueError("handle_width_px must be > 0")
        if self.lane_spacing_px < 0:
            raise ValueError("lane_spacing_px must be >= 0")
        if self.min_duration_days < 1:
            raise ValueError("min_duration_days must be >= 1")
        if self.max_duration_days is not None and self.max_duration_days < self.min_duration_days:
            raise ValueError("max_duration_days must be >= min_duration_days")


@dataclass(frozen=True)
class BoardConfig:
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    collisions: CollisionOptions = field(default_factory=CollisionOptions)
    drag: DragConfig = field(default_factory=DragConfig)
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    snap_overrides: Mapping[ViewMode, Mapping[str, Any]] = field(default_factory=dict)

    def snap_config(self, view_mode: ViewMode) -> SnapConfig:
        mode = ViewMode(view_mode)
        return snap_config_for_view_mode(mode, **dict(self.snap_overrides.get(mode, {})))


_SECTIONS: dict[str, type] = {
    "validation": ValidationConfig,
    "collisions": CollisionOptions,
    "drag": DragConfig,
    "backoff": BackoffConfig,
}


def board_config_from_dict(raw: Mapping[str, Any]) -> BoardConfig:
    unknown = set(raw) - set(_SECTIONS) - {"snap"}
    if unknown:
        raise ConfigError(f"unknown config sections: {', '.join(sorted(unknown))}")

    sections: dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        table = raw.get(name, {})
        if not isinstance(table, Mapping):
            raise ConfigError(f"[{name}] must be a table")
        sections[name] = _build_section(name, cls, table)

    snap_raw = raw.get("snap", {})
    if not isinstance(snap_raw, Mapping):
        raise ConfigError("[snap] must be a table")
    snap_fields = {f.name for f in dataclasses.fields(SnapConfig)}
    overrides: dict[ViewMode, dict[str, Any]] = {}
    for mode_name, table in snap_raw.items():
        try:
            mode = ViewMode(mode_name)
        except ValueError as exc:
            raise ConfigError(f"unknown snap view mode: {mode_name}") from exc
        if not isinstance(table, Mapping):
            raise ConfigError(f"[snap.{mode_name}] must be a table")
        bad = set(table) - snap_fields
        if bad:
            raise ConfigError(f"unknown keys in [snap.{mode_name}]: {', '.join(sorted(bad))}")
        overrides[mode] = dict(table)

    config = BoardConfig(snap_overrides=overrides, **sections)
    for mode in overrides:
        try:
            config.snap_config(mode)
        except ValueError as exc:
            raise ConfigError(f"[snap.{mode.value}]: {exc}") from exc
    return config


def load_board_config(path: str | Path) -> BoardConfig:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"board config not found: {config_path}")
    with config_path.open("rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {config_path}: {exc}") from exc
    config = board_config_from_dict(raw)
    LOGGER.debug("loaded board config from %s", config_path)
    return config


def _build_section(name: str, cls: type, table: Mapping[str, Any]) -> Any:
    allowed = {f.name for f in dataclasses.fields(cls)}
    bad = set(table) - allowed
    if bad:
        raise ConfigError(f"unknown keys in [{name}]: {', '.join(sorted(bad))}")
    try:
        return cls(**dict(table))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"[{name}]: {exc}") from exc
