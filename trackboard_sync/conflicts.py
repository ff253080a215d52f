from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from trackboard_core.config import BackoffConfig
from trackboard_core.schema import Tracker, TrackerPriority, TrackerStatus, coerce_date, normalize_partial

from .errors import ErrorClass, classify_error
from .retry import Classifier, RetryQueue, with_retry

if TYPE_CHECKING:
    from .store import TrackerStore

LOGGER = logging.getLogger(__name__)


def merge_updates(current: Tracker, attempted: Mapping[str, Any]) -> dict[str, Any]:
    """Merge a rejected partial update onto the server's record.

    The later end date wins, status never moves backwards, and the more
    severe priority is kept. The result carries the server's ``updated_at``
    so that resubmitting it passes the store's version check.
    """
    merged = normalize_partial(attempted)

    end = coerce_date(merged.get("end_date"))
    if end is not None:
        merged["end_date"] = max(end, current.end_date)

    if "status" in merged:
        status = TrackerStatus(merged["status"])
        merged["status"] = status if status.rank >= current.status.rank else current.status

    if "priority" in merged:
        priority = TrackerPriority(merged["priority"])
        merged["priority"] = priority if priority.rank >= current.priority.rank else current.priority

    if current.updated_at is not None:
        merged["updated_at"] = current.updated_at
    else:
        merged.pop("updated_at", None)
    return merged


async def update_with_conflict_resolution(
    store: "TrackerStore",
    tracker_id: str,
    partial: Mapping[str, Any],
    *,
    classify: Classifier = classify_error,
    backoff: BackoffConfig | None = None,
    queue: RetryQueue | None = None,
) -> Tracker:
    """Update through the retry layer, merging and resubmitting once on a conflict."""
    payload: Mapping[str, Any] = partial
    merged_once = False

    async def attempt() -> Tracker:
        nonlocal payload, merged_once
        try:
            return await store.update(tracker_id, payload)
        except Exception as exc:
            if merged_once or classify(exc) is not ErrorClass.CONFLICT:
                raise
        current = await store.get(tracker_id)
        payload = merge_updates(current, partial)
        merged_once = True
        LOGGER.info("resolved update conflict for %s; resubmitting merged fields %s", tracker_id, sorted(payload))
        return await store.update(tracker_id, payload)

    return await with_retry(attempt, classify=classify, backoff=backoff, queue=queue, kind="update_tracker")
