from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

from trackboard_core.config import BackoffConfig
from trackboard_core.dates import ranges_overlap
from trackboard_core.schema import Tracker, apply_partial, coerce_datetime, tracker_from_dict

from .conflicts import update_with_conflict_resolution
from .errors import ErrorClass, StoreError
from .retry import RetryQueue

LOGGER = logging.getLogger(__name__)


class TrackerStore(Protocol):
    async def list(self, project_id: str) -> list[Tracker]: ...

    async def list_in_range(self, project_id: str, start: dt.date, end: dt.date) -> list[Tracker]: ...

    async def get(self, tracker_id: str) -> Tracker: ...

    async def create(self, data: Mapping[str, Any]) -> Tracker: ...

    async def update(self, tracker_id: str, partial: Mapping[str, Any]) -> Tracker: ...

    async def delete(self, tracker_id: str) -> None: ...

    async def bulk_update(self, tracker_ids: Sequence[str], partial: Mapping[str, Any]) -> list[Tracker]: ...


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class InMemoryTrackerStore:
    """Process-local store with optimistic concurrency on ``updated_at``.

    An update whose partial carries ``updated_at`` is rejected with a
    conflict when that stamp is not the stored one. Queued failures from
    ``inject_failures`` are raised by the next calls, one per call.
    """

    def __init__(self, trackers: Iterable[Tracker] = (), *, now: Callable[[], dt.datetime] = _utc_now) -> None:
        self._now = now
        self._records: dict[str, Tracker] = {}
        self._failures: list[BaseException] = []
        self.calls: list[str] = []
        for tracker in trackers:
            self._records[tracker.tracker_id] = tracker

    def inject_failures(self, *errors: BaseException) -> None:
        self._failures.extend(errors)

    def snapshot(self) -> tuple[Tracker, ...]:
        return tuple(self._records.values())

    async def list(self, project_id: str) -> list[Tracker]:
        self._enter("list")
        return sorted(
            (t for t in self._records.values() if t.project_id == project_id),
            key=lambda t: (t.start_date, t.tracker_id),
        )

    async def list_in_range(self, project_id: str, start: dt.date, end: dt.date) -> list[Tracker]:
        self._enter("list_in_range")
        return sorted(
            (
                t
                for t in self._records.values()
                if t.project_id == project_id and ranges_overlap(t.start_date, t.end_date, start, end)
            ),
            key=lambda t: (t.start_date, t.tracker_id),
        )

    async def get(self, tracker_id: str) -> Tracker:
        self._enter("get")
        return self._require(tracker_id)

    async def create(self, data: Mapping[str, Any]) -> Tracker:
        self._enter("create")
        payload = dict(data)
        payload.setdefault("id", uuid.uuid4().hex)
        stamp = self._stamp(None)
        payload["created_at"] = stamp
        payload["updated_at"] = stamp
        try:
            tracker = tracker_from_dict(payload)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"invalid tracker: {exc}", status=422) from exc
        if tracker.tracker_id in self._records:
            raise StoreError(f"tracker already exists: {tracker.tracker_id}", status=409)
        self._records[tracker.tracker_id] = tracker
        return tracker

    async def update(self, tracker_id: str, partial: Mapping[str, Any]) -> Tracker:
        self._enter("update")
        return self._apply(tracker_id, partial)

    async def delete(self, tracker_id: str) -> None:
        self._enter("delete")
        self._require(tracker_id)
        del self._records[tracker_id]

    async def bulk_update(self, tracker_ids: Sequence[str], partial: Mapping[str, Any]) -> list[Tracker]:
        self._enter("bulk_update")
        for tracker_id in tracker_ids:
            self._require(tracker_id)
        return [self._apply(tracker_id, partial) for tracker_id in tracker_ids]

    def _enter(self, call: str) -> None:
        self.calls.append(call)
        if self._failures:
            raise self._failures.pop(0)

    def _require(self, tracker_id: str) -> Tracker:
        tracker = self._records.get(tracker_id)
        if tracker is None:
            raise StoreError(f"tracker not found: {tracker_id}", status=404)
        return tracker

    def _apply(self, tracker_id: str, partial: Mapping[str, Any]) -> Tracker:
        current = self._require(tracker_id)
        changes = dict(partial)
        expected = coerce_datetime(changes.pop("updated_at", changes.pop("updatedAt", None)))
        if expected is not None and expected != current.updated_at:
            LOGGER.debug("rejecting stale update for %s", tracker_id)
            raise StoreError(
                f"conflict: tracker {tracker_id} changed since {expected.isoformat()}",
                status=409,
                error_class=ErrorClass.CONFLICT,
            )
        try:
            updated = apply_partial(current, changes)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"invalid update for {tracker_id}: {exc}", status=422) from exc
        updated = apply_partial(updated, {"updated_at": self._stamp(current.updated_at)})
        self._records[tracker_id] = updated
        return updated

    def _stamp(self, previous: dt.datetime | None) -> dt.datetime:
        stamp = self._now()
        if previous is not None and stamp <= previous:
            stamp = previous + dt.timedelta(microseconds=1)
        return stamp


class RetryingTrackerStore:
    """Routes every store call through a caller-owned ``RetryQueue``."""

    def __init__(self, store: TrackerStore, queue: RetryQueue, *, backoff: BackoffConfig | None = None) -> None:
        self.store = store
        self.queue = queue
        self.backoff = backoff

    async def list(self, project_id: str) -> list[Tracker]:
        return await self.queue.submit(lambda: self.store.list(project_id), kind="fetch_trackers", backoff=self.backoff)

    async def list_in_range(self, project_id: str, start: dt.date, end: dt.date) -> list[Tracker]:
        return await self.queue.submit(
            lambda: self.store.list_in_range(project_id, start, end),
            kind="fetch_trackers",
            backoff=self.backoff,
        )

    async def get(self, tracker_id: str) -> Tracker:
        return await self.queue.submit(lambda: self.store.get(tracker_id), kind="get_tracker", backoff=self.backoff)

    async def create(self, data: Mapping[str, Any]) -> Tracker:
        return await self.queue.submit(lambda: self.store.create(data), kind="create_tracker", backoff=self.backoff)

    async def update(self, tracker_id: str, partial: Mapping[str, Any]) -> Tracker:
        return await update_with_conflict_resolution(
            self.store, tracker_id, partial, backoff=self.backoff, queue=self.queue
        )

    async def delete(self, tracker_id: str) -> None:
        await self.queue.submit(lambda: self.store.delete(tracker_id), kind="delete_tracker", backoff=self.backoff)

    async def bulk_update(self, tracker_ids: Sequence[str], partial: Mapping[str, Any]) -> list[Tracker]:
        ids = list(tracker_ids)
        return await self.queue.submit(
            lambda: self.store.bulk_update(ids, partial), kind="bulk_update", backoff=self.backoff
        )
