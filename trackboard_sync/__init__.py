"""Persistence boundary: retrying store calls, conflict merges and the sync audit trail."""

from trackboard_core.config import BackoffConfig

from .audit import JsonlAuditSink, SQLiteAuditSink, audit_entry, open_audit_sink
from .conflicts import merge_updates, update_with_conflict_resolution
from .errors import (
    ErrorClass,
    OperationCancelled,
    RetryExhausted,
    StoreError,
    classify_error,
    is_retryable,
)
from .retry import OperationStatus, PendingOperation, QueueStats, RetryQueue, compute_delay, with_retry
from .store import InMemoryTrackerStore, RetryingTrackerStore, TrackerStore

__all__ = [
    "BackoffConfig",
    "ErrorClass",
    "InMemoryTrackerStore",
    "JsonlAuditSink",
    "OperationCancelled",
    "OperationStatus",
    "PendingOperation",
    "QueueStats",
    "RetryExhausted",
    "RetryQueue",
    "RetryingTrackerStore",
    "SQLiteAuditSink",
    "StoreError",
    "TrackerStore",
    "audit_entry",
    "classify_error",
    "compute_delay",
    "is_retryable",
    "merge_updates",
    "open_audit_sink",
    "update_with_conflict_resolution",
    "with_retry",
]
