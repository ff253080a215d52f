"""Retry queue for store operations.

Each submitted operation first retries inline with exponential backoff; once
the inline budget is spent it moves to a background queue drained by a single
``asyncio`` task per ``RetryQueue``. The queue is owned by its caller: build
one at startup and call ``cancel_all()`` at teardown.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generator

from trackboard_core.config import BackoffConfig

from .audit import audit_entry
from .errors import ErrorClass, OperationCancelled, RetryExhausted, classify_error, is_retryable

LOGGER = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]
Classifier = Callable[[BaseException], ErrorClass]


class OperationStatus(str, Enum):
    RUNNING = "running"
    QUEUED = "queued"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class QueueStats:
    queued: int
    in_flight: int
    retrying: int
    next_retry_in: float | None


def compute_delay(attempt: int, config: BackoffConfig, rng: Callable[[], float] = random.random) -> float:
    """Backoff in seconds before the attempt following ``attempt`` (1-based)."""
    capped = min(config.base_delay * config.multiplier ** max(0, attempt - 1), config.max_delay)
    return capped * (1.0 + config.jitter * rng())


class PendingOperation:
    """Awaitable handle for a submitted operation."""

    def __init__(
        self,
        queue: "RetryQueue",
        op_id: str,
        kind: str,
        operation: Operation,
        future: asyncio.Future,
        backoff: BackoffConfig,
        classify: Classifier,
        on_retry: Callable[[BaseException, int], None] | None,
        on_success: Callable[[Any, int], None] | None,
        on_failure: Callable[[BaseException, int], None] | None,
    ) -> None:
        self._queue = queue
        self.op_id = op_id
        self.kind = kind
        self.operation = operation
        self.backoff = backoff
        self.classify = classify
        self.on_retry = on_retry
        self.on_success = on_success
        self.on_failure = on_failure
        self.attempts = 0
        self.last_error: BaseException | None = None
        self.next_at: float | None = None
        self._future = future
        self._status = OperationStatus.RUNNING

    def __await__(self) -> Generator[Any, None, Any]:
        return self._future.__await__()

    def status(self) -> OperationStatus:
        return self._status

    def done(self) -> bool:
        return self._future.done()

    def cancel(self) -> bool:
        return self._queue.cancel(self.op_id)

    def _settle(self, status: OperationStatus) -> None:
        self._status = status
        self.next_at = None


class RetryQueue:
    def __init__(
        self,
        backoff: BackoffConfig | None = None,
        *,
        classify: Classifier = classify_error,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
        audit_logger: Callable[[dict[str, Any]], None] | None = None,
        poll_interval: float = 0.1,
    ) -> None:
        if poll_interval < 0:
            raise ValueError("poll_interval must be >= 0")
        self.backoff = backoff or BackoffConfig()
        self._classify = classify
        self._sleep = sleep
        self._clock = clock
        self._rng = rng
        self._audit_logger = audit_logger
        self._poll_interval = poll_interval
        self._ops: dict[str, PendingOperation] = {}
        self._queued: list[PendingOperation] = []
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._draining = False
        self._ids = itertools.count(1)

    def submit(
        self,
        operation: Operation,
        *,
        op_id: str | None = None,
        kind: str = "operation",
        backoff: BackoffConfig | None = None,
        classify: Classifier | None = None,
        on_retry: Callable[[BaseException, int], None] | None = None,
        on_success: Callable[[Any, int], None] | None = None,
        on_failure: Callable[[BaseException, int], None] | None = None,
    ) -> PendingOperation:
        """Start ``operation`` now; must be called from inside a running event loop."""
        loop = asyncio.get_running_loop()
        op_id = op_id or f"{kind}-{next(self._ids)}"
        existing = self._ops.get(op_id)
        if existing is not None and not existing.done():
            raise ValueError(f"operation already pending: {op_id}")
        op = PendingOperation(
            self,
            op_id,
            kind,
            operation,
            loop.create_future(),
            backoff or self.backoff,
            classify or self._classify,
            on_retry,
            on_success,
            on_failure,
        )
        self._ops[op_id] = op
        self._spawn(self._run_inline(op))
        return op

    def status(self, op_id: str) -> OperationStatus | None:
        op = self._ops.get(op_id)
        return op.status() if op is not None else None

    def stats(self) -> QueueStats:
        next_retry = None
        if self._queued:
            next_retry = max(0.0, min(op.next_at or 0.0 for op in self._queued) - self._clock())
        return QueueStats(
            queued=len(self._queued),
            in_flight=len(self._in_flight),
            retrying=sum(1 for op in self._queued if op.attempts > 1),
            next_retry_in=next_retry,
        )

    def cancel(self, op_id: str) -> bool:
        """Reject a pending operation; an in-flight call still runs but its result is dropped."""
        op = self._ops.get(op_id)
        if op is None or op.done():
            return False
        if op in self._queued:
            self._queued.remove(op)
        op._settle(OperationStatus.CANCELLED)
        op._future.set_exception(OperationCancelled(op_id))
        LOGGER.info("cancelled %s %s after %d attempt(s)", op.kind, op_id, op.attempts)
        self._audit("cancelled", op)
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for op_id in list(self._ops):
            if self.cancel(op_id):
                cancelled += 1
        return cancelled

    async def wait_idle(self) -> None:
        while True:
            pending = [op._future for op in self._ops.values() if not op.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_inline(self, op: PendingOperation) -> None:
        inline_limit = min(op.backoff.inline_attempts, op.backoff.max_retries)
        while not op.done():
            error = await self._attempt(op)
            if error is None or op.done():
                return
            if op.attempts < inline_limit:
                delay = compute_delay(op.attempts, op.backoff, self._rng)
                self._notify_retry(op, error, delay)
                await self._sleep(delay)
                continue
            delay = compute_delay(op.attempts, op.backoff, self._rng)
            self._notify_retry(op, error, delay)
            op.next_at = self._clock() + delay
            op._status = OperationStatus.QUEUED
            self._queued.append(op)
            if not self._draining:
                self._draining = True
                self._spawn(self._drain())
            return

    async def _drain(self) -> None:
        try:
            while self._queued:
                now = self._clock()
                ready = [op for op in self._queued if op.next_at is not None and op.next_at <= now]
                if not ready:
                    upcoming = min(op.next_at or now for op in self._queued)
                    await self._sleep(max(self._poll_interval, upcoming - now))
                    continue
                for op in ready:
                    if op not in self._queued:
                        continue
                    self._queued.remove(op)
                    op._status = OperationStatus.RUNNING
                    error = await self._attempt(op)
                    if error is None or op.done():
                        continue
                    delay = compute_delay(op.attempts, op.backoff, self._rng)
                    self._notify_retry(op, error, delay)
                    op.next_at = self._clock() + delay
                    op._status = OperationStatus.QUEUED
                    self._queued.append(op)
        finally:
            self._draining = False

    async def _attempt(self, op: PendingOperation) -> BaseException | None:
        """Run one attempt; returns the error when another attempt should follow."""
        op.attempts += 1
        self._in_flight.add(op.op_id)
        try:
            result = await op.operation()
        except Exception as exc:
            op.last_error = exc
            if op.done():
                return None
            try:
                error_class = op.classify(exc)
            except Exception:
                LOGGER.exception("classifier for %s %s raised; failing the operation", op.kind, op.op_id)
                self._fail(op, exc, "classifier raised")
                return None
            if not is_retryable(error_class):
                self._fail(op, exc, f"{error_class.value} error is not retryable")
                return None
            if op.attempts >= op.backoff.max_retries:
                self._fail(op, RetryExhausted(exc, op.attempts), f"exhausted after {error_class.value} error")
                return None
            return exc
        finally:
            self._in_flight.discard(op.op_id)

        if op.done():
            LOGGER.debug("discarding late result for cancelled %s", op.op_id)
            return None
        op._settle(OperationStatus.SUCCEEDED)
        op._future.set_result(result)
        if op.attempts > 1:
            LOGGER.info("%s %s succeeded after %d attempts", op.kind, op.op_id, op.attempts)
        self._audit("succeeded", op)
        self._callback("on_success", op, op.on_success, result)
        return None

    def _notify_retry(self, op: PendingOperation, error: BaseException, delay: float) -> None:
        LOGGER.warning(
            "retrying %s %s in %.2fs (attempt %d/%d): %s",
            op.kind,
            op.op_id,
            delay,
            op.attempts,
            op.backoff.max_retries,
            error,
        )
        self._audit("retry", op, str(error))
        self._callback("on_retry", op, op.on_retry, error)

    def _fail(self, op: PendingOperation, error: BaseException, reason: str) -> None:
        op._settle(OperationStatus.FAILED)
        op._future.set_exception(error)
        LOGGER.error("%s %s failed permanently (%s): %s", op.kind, op.op_id, reason, error)
        self._audit("failed", op, str(error))
        self._callback("on_failure", op, op.on_failure, error)

    def _callback(
        self,
        name: str,
        op: PendingOperation,
        callback: Callable[[Any, int], Any] | None,
        value: Any,
    ) -> None:
        if callback is None:
            return
        try:
            callback(value, op.attempts)
        except Exception:
            LOGGER.exception("%s callback for %s %s raised", name, op.kind, op.op_id)

    def _audit(self, action: str, op: PendingOperation, detail: str = "") -> None:
        if self._audit_logger is None:
            return
        self._audit_logger(audit_entry(action, op_kind=op.kind, op_id=op.op_id, attempts=op.attempts, detail=detail))


async def with_retry(
    operation: Operation,
    *,
    classify: Classifier = classify_error,
    backoff: BackoffConfig | None = None,
    queue: RetryQueue | None = None,
    kind: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> Any:
    """Run ``operation`` with retries; without a queue every attempt happens inline."""
    if queue is not None:
        return await queue.submit(operation, kind=kind, classify=classify, backoff=backoff)

    config = backoff or BackoffConfig()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            error_class = classify(exc)
            if not is_retryable(error_class):
                raise
            if attempt >= config.max_retries:
                raise RetryExhausted(exc, attempt) from exc
            delay = compute_delay(attempt, config, rng)
            LOGGER.warning("retrying %s in %.2fs (attempt %d/%d): %s", kind, delay, attempt, config.max_retries, exc)
            await sleep(delay)
