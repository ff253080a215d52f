from __future__ import annotations

import asyncio
import datetime as dt
import unittest
from typing import Any

from trackboard_core.config import BackoffConfig
from trackboard_core.schema import Tracker, TrackerPriority, TrackerStatus
from trackboard_sync.conflicts import merge_updates, update_with_conflict_resolution
from trackboard_sync.errors import ErrorClass, RetryExhausted, StoreError
from trackboard_sync.retry import RetryQueue
from trackboard_sync.store import InMemoryTrackerStore, RetryingTrackerStore

STAMP = dt.datetime(2024, 1, 1, 12, 0, tzinfo=dt.timezone.utc)


def _tracker(**kwargs: Any) -> Tracker:
    defaults: dict[str, Any] = {
        "tracker_id": "t1",
        "project_id": "p1",
        "title": "Launch",
        "start_date": dt.date(2024, 1, 1),
        "end_date": dt.date(2024, 1, 10),
        "updated_at": STAMP,
    }
    defaults.update(kwargs)
    return Tracker(**defaults)


class Ticker:
    def __init__(self) -> None:
        self.current = STAMP

    def __call__(self) -> dt.datetime:
        self.current += dt.timedelta(seconds=1)
        return self.current


async def _no_sleep(delay: float) -> None:
    await asyncio.sleep(0)


class MergeUpdatesTests(unittest.TestCase):
    def test_status_never_regresses(self) -> None:
        current = _tracker(status=TrackerStatus.COMPLETED)
        merged = merge_updates(current, {"status": "in_progress"})
        self.assertIs(merged["status"], TrackerStatus.COMPLETED)
        advanced = merge_updates(_tracker(status=TrackerStatus.NOT_STARTED), {"status": "in_progress"})
        self.assertIs(advanced["status"], TrackerStatus.IN_PROGRESS)

    def test_later_end_and_higher_priority_win(self) -> None:
        current = _tracker(end_date=dt.date(2024, 1, 20), priority=TrackerPriority.CRITICAL)
        merged = merge_updates(current, {"endDate": "2024-01-15", "priority": "low", "title": "Renamed"})
        self.assertEqual(merged["end_date"], dt.date(2024, 1, 20))
        self.assertIs(merged["priority"], TrackerPriority.CRITICAL)
        self.assertEqual(merged["title"], "Renamed")
        self.assertEqual(merged["updated_at"], STAMP)


class ConflictResolutionTests(unittest.IsolatedAsyncioTestCase):
    async def test_stale_update_is_merged_and_resubmitted(self) -> None:
        store = InMemoryTrackerStore([_tracker(status=TrackerStatus.COMPLETED)], now=Ticker())
        stale = {"status": "in_progress", "end_date": "2024-01-12", "updated_at": "2023-12-31T00:00:00+00:00"}
        saved = await update_with_conflict_resolution(store, "t1", stale, backoff=BackoffConfig(jitter=0.0))
        self.assertIs(saved.status, TrackerStatus.COMPLETED)
        self.assertEqual(saved.end_date, dt.date(2024, 1, 12))
        self.assertGreater(saved.updated_at, STAMP)
        self.assertEqual(store.calls, ["update", "get", "update"])

    async def test_second_conflict_is_raised(self) -> None:
        store = InMemoryTrackerStore([_tracker()], now=Ticker())
        updates: list[dict[str, Any]] = []

        async def always_conflicts(tracker_id: str, partial: Any) -> Tracker:
            updates.append(dict(partial))
            raise StoreError("conflict", status=409, error_class=ErrorClass.CONFLICT)

        store.update = always_conflicts  # type: ignore[method-assign]
        with self.assertRaises(StoreError) as ctx:
            await update_with_conflict_resolution(store, "t1", {"title": "New"})
        self.assertEqual(ctx.exception.status, 409)
        self.assertEqual(len(updates), 2)
        self.assertEqual(updates[1]["updated_at"], STAMP)
        self.assertEqual(store.calls, ["get"])

    async def test_transient_fetch_failure_still_merges_on_retry(self) -> None:
        store = InMemoryTrackerStore([_tracker(status=TrackerStatus.COMPLETED)], now=Ticker())
        queue = RetryQueue(BackoffConfig(jitter=0.0), sleep=_no_sleep, rng=lambda: 0.0)
        original_get = store.get
        fetches: list[str] = []

        async def get_once_down(tracker_id: str) -> Tracker:
            fetches.append(tracker_id)
            if len(fetches) == 1:
                raise ConnectionError("reset")
            return await original_get(tracker_id)

        store.get = get_once_down  # type: ignore[method-assign]
        stale = {"status": "in_progress", "end_date": "2024-01-12", "updated_at": "2023-12-31T00:00:00+00:00"}
        saved = await update_with_conflict_resolution(store, "t1", stale, queue=queue)
        self.assertIs(saved.status, TrackerStatus.COMPLETED)
        self.assertEqual(saved.end_date, dt.date(2024, 1, 12))
        self.assertEqual(len(fetches), 2)
        self.assertEqual(store.calls, ["update", "update", "get", "update"])

    async def test_transient_failure_after_merge_keeps_merged_payload(self) -> None:
        store = InMemoryTrackerStore([_tracker(status=TrackerStatus.COMPLETED)], now=Ticker())
        queue = RetryQueue(BackoffConfig(jitter=0.0), sleep=_no_sleep, rng=lambda: 0.0)
        stale = {"status": "not_started", "updated_at": "2023-12-31T00:00:00+00:00"}
        store.inject_failures(StoreError("stale", status=409))
        # the first update raises the injected conflict; the merged resubmit then hits a 503
        original_update = store.update
        attempts: list[dict[str, Any]] = []

        async def flaky_update(tracker_id: str, partial: Any) -> Tracker:
            attempts.append(dict(partial))
            if len(attempts) == 2:
                raise StoreError("unavailable", status=503)
            return await original_update(tracker_id, partial)

        store.update = flaky_update  # type: ignore[method-assign]
        saved = await update_with_conflict_resolution(store, "t1", stale, queue=queue)
        self.assertIs(saved.status, TrackerStatus.COMPLETED)
        self.assertEqual(len(attempts), 3)
        self.assertIs(attempts[2]["status"], TrackerStatus.COMPLETED)


class InMemoryStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_crud_and_range_queries(self) -> None:
        store = InMemoryTrackerStore(now=Ticker())
        created = await store.create(
            {"projectId": "p1", "title": "Spec", "start_date": "2024-02-01", "end_date": "2024-02-05"}
        )
        self.assertEqual(created.created_at, created.updated_at)
        await store.create({"id": "other", "project_id": "p2", "title": "Other", "start": "2024-02-01", "end": "2024-02-02"})

        self.assertEqual([t.tracker_id for t in await store.list("p1")], [created.tracker_id])
        self.assertEqual(await store.list_in_range("p1", dt.date(2024, 3, 1), dt.date(2024, 3, 31)), [])

        updated = await store.update(created.tracker_id, {"status": "in_progress"})
        self.assertGreater(updated.updated_at, created.updated_at)
        await store.delete(created.tracker_id)
        with self.assertRaises(StoreError) as ctx:
            await store.get(created.tracker_id)
        self.assertEqual(ctx.exception.status, 404)

    async def test_invalid_payload_is_a_validation_error(self) -> None:
        store = InMemoryTrackerStore()
        with self.assertRaises(StoreError) as ctx:
            await store.create({"title": "Bad", "start_date": "2024-02-05", "end_date": "2024-02-01"})
        self.assertEqual(ctx.exception.status, 422)

    async def test_stamp_is_strictly_increasing_with_frozen_clock(self) -> None:
        store = InMemoryTrackerStore([_tracker()], now=lambda: STAMP)
        first = await store.update("t1", {"title": "A"})
        second = await store.update("t1", {"title": "B"})
        self.assertLess(first.updated_at, second.updated_at)

    async def test_bulk_update(self) -> None:
        store = InMemoryTrackerStore([_tracker(), _tracker(tracker_id="t2")], now=Ticker())
        updated = await store.bulk_update(["t1", "t2"], {"status": "completed"})
        self.assertEqual({t.status for t in updated}, {TrackerStatus.COMPLETED})
        with self.assertRaises(StoreError):
            await store.bulk_update(["t1", "missing"], {"status": "completed"})


class RetryingStoreTests(unittest.IsolatedAsyncioTestCase):
    async def test_transient_failures_are_retried(self) -> None:
        inner = InMemoryTrackerStore([_tracker()], now=Ticker())
        audit: list[dict[str, Any]] = []
        queue = RetryQueue(BackoffConfig(jitter=0.0), sleep=_no_sleep, rng=lambda: 0.0, audit_logger=audit.append)
        store = RetryingTrackerStore(inner, queue)
        inner.inject_failures(ConnectionError("reset"))
        trackers = await store.list("p1")
        self.assertEqual([t.tracker_id for t in trackers], ["t1"])
        self.assertEqual([(row["action"], row["op_kind"]) for row in audit], [("retry", "fetch_trackers"), ("succeeded", "fetch_trackers")])

    async def test_exhausted_delete_raises(self) -> None:
        inner = InMemoryTrackerStore([_tracker()])
        queue = RetryQueue(BackoffConfig(max_retries=2, jitter=0.0), sleep=_no_sleep, rng=lambda: 0.0)
        inner.inject_failures(*(StoreError("down", status=500) for _ in range(2)))
        with self.assertRaises(RetryExhausted):
            await RetryingTrackerStore(inner, queue).delete("t1")
        self.assertEqual(len(inner.snapshot()), 1)


if __name__ == "__main__":
    unittest.main()
