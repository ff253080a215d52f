from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from typing import Any, Iterable, Mapping, Sequence

from trackboard_core.collisions import IntegrityReport, check_timeline_integrity
from trackboard_core.config import BoardConfig
from trackboard_core.dates import DateRangeInfo, ViewMode, shift_anchor, visible_range
from trackboard_core.lanes import LaneMap, assign_lanes
from trackboard_core.schema import Tracker, TrackerStatus
from trackboard_core.validation import BulkOperation, TrackerValidator, ValidationResult, require_valid
from trackboard_sync.store import TrackerStore

from .drag import DragContext, DragController, DragPhase, DragState, PreviewHint, preview_hint
from .events import PointerEvent
from .geometry import BoardLayout, board_layout

LOGGER = logging.getLogger(__name__)


class TimelineBoard:
    """One project's board: the authoritative tracker list plus its derived lanes.

    Every mutation replaces the tracker list and recomputes lanes from
    scratch. Writes go through ``store`` when one is attached; pass a
    ``RetryingTrackerStore`` to get retries and conflict merging.
    """

    def __init__(
        self,
        trackers: Iterable[Tracker] = (),
        *,
        project_id: str = "",
        anchor: dt.date | None = None,
        view_mode: ViewMode = ViewMode.MONTHLY,
        today: dt.date | None = None,
        config: BoardConfig | None = None,
        store: TrackerStore | None = None,
    ) -> None:
        self.project_id = project_id
        self.config = config or BoardConfig()
        self.store = store
        self._today = today
        self._view_mode = ViewMode(view_mode)
        self._anchor = anchor or today or dt.date.today()
        self.validator = TrackerValidator(self.config.validation, today=today, collision_options=self.config.collisions)
        self.controller = DragController()
        self._trackers: dict[str, Tracker] = {}
        self._lane_map = LaneMap()
        self.replace_all(trackers)

    @property
    def trackers(self) -> tuple[Tracker, ...]:
        return tuple(sorted(self._trackers.values(), key=lambda t: (t.start_date, t.tracker_id)))

    @property
    def lane_map(self) -> LaneMap:
        return self._lane_map

    @property
    def view_mode(self) -> ViewMode:
        return self._view_mode

    @property
    def anchor(self) -> dt.date:
        return self._anchor

    @property
    def visible(self) -> DateRangeInfo:
        return visible_range(self._anchor, self._view_mode)

    def replace_all(self, trackers: Iterable[Tracker]) -> LaneMap:
        self._trackers = {t.tracker_id: t for t in trackers}
        return self._recompute()

    def get(self, tracker_id: str) -> Tracker | None:
        return self._trackers.get(tracker_id)

    def set_view_mode(self, view_mode: ViewMode) -> DateRangeInfo:
        self._view_mode = ViewMode(view_mode)
        return self.visible

    def navigate(self, steps: int) -> DateRangeInfo:
        self._anchor = shift_anchor(self._anchor, self._view_mode, steps)
        return self.visible

    def next_period(self) -> DateRangeInfo:
        return self.navigate(1)

    def previous_period(self) -> DateRangeInfo:
        return self.navigate(-1)

    def jump_to(self, value: dt.date) -> DateRangeInfo:
        self._anchor = value
        return self.visible

    def layout(self) -> BoardLayout:
        info = self.visible
        spacing = self.config.drag.lane_spacing_px
        return board_layout(self.trackers, self._lane_map, info.start, info.end, self._view_mode, spacing=spacing)

    def drag_context(self) -> DragContext:
        return DragContext(
            view_mode=self._view_mode,
            trackers=self.trackers,
            lane_map=self._lane_map,
            snap=self.config.snap_config(self._view_mode),
            drag=self.config.drag,
            collisions=self.config.collisions,
            validator=self.validator,
        )

    def handle_event(self, event: PointerEvent) -> DragState:
        return self.controller.handle(event, self.drag_context(), self.layout())

    def hint(self, pointer_id: int = 0) -> PreviewHint:
        return preview_hint(self.controller.state(pointer_id))

    async def commit_pending(self, pointer_id: int = 0) -> Tracker | None:
        """Persist a committing gesture, then return the pointer to idle.

        Store failures propagate after the gesture is settled; the tracker
        list is left untouched in that case.
        """
        state = self.controller.state(pointer_id)
        if state.phase is not DragPhase.COMMITTING or state.commit is None:
            self.controller.settle(pointer_id)
            return None
        commit = state.commit
        try:
            if not commit.changed:
                return commit.tracker
            if self.store is not None:
                saved = await self.store.update(commit.tracker.tracker_id, commit.as_partial())
            else:
                saved = commit.tracker.with_range(commit.start_date, commit.end_date)
            self._trackers[saved.tracker_id] = saved
            self._recompute()
            LOGGER.info(
                "committed %s on %s: %s..%s lane %s",
                commit.kind.value,
                saved.tracker_id,
                saved.start_date.isoformat(),
                saved.end_date.isoformat(),
                self._lane_map.lane_of(saved.tracker_id),
            )
            return saved
        finally:
            self.controller.settle(pointer_id)

    async def refresh(self) -> LaneMap:
        if self.store is None:
            return self._lane_map
        return self.replace_all(await self.store.list(self.project_id))

    async def create_tracker(self, data: Mapping[str, Any]) -> Tracker:
        require_valid(self.validator.validate_tracker(data))
        payload = dict(data)
        payload.setdefault("project_id", self.project_id)
        if self.store is None:
            raise RuntimeError("create_tracker requires an attached store")
        created = await self.store.create(payload)
        self._trackers[created.tracker_id] = created
        self._recompute()
        return created

    async def delete_tracker(self, tracker_id: str) -> None:
        if self.store is not None:
            await self.store.delete(tracker_id)
        self._trackers.pop(tracker_id, None)
        self._recompute()

    async def bulk_update_status(
        self, tracker_ids: Sequence[str], status: TrackerStatus
    ) -> tuple[ValidationResult, list[Tracker]]:
        selected = [self._trackers[tid] for tid in tracker_ids if tid in self._trackers]
        report = self.validator.validate_bulk(selected, BulkOperation.UPDATE_STATUS)
        if not selected:
            return report, []
        ids = [t.tracker_id for t in selected]
        partial = {"status": TrackerStatus(status).value}
        if self.store is not None:
            updated = await self.store.bulk_update(ids, partial)
        else:
            updated = [dataclasses.replace(t, status=TrackerStatus(status)) for t in selected]
        for tracker in updated:
            self._trackers[tracker.tracker_id] = tracker
        self._recompute()
        return report, list(updated)

    def integrity(self) -> IntegrityReport:
        return check_timeline_integrity(self.trackers, self._lane_map)

    def _recompute(self) -> LaneMap:
        self._lane_map = assign_lanes(self._trackers.values())
        LOGGER.debug("recomputed %d lane(s) for %d tracker(s)", self._lane_map.lane_count, len(self._trackers))
        return self._lane_map
