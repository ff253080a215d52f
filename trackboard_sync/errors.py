from __future__ import annotations

from enum import Enum


class ErrorClass(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER = "server"
    RATE_LIMITED = "rate_limited"
    VALIDATION = "validation"
    PERMISSION = "permission"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


RETRYABLE_CLASSES = frozenset(
    {ErrorClass.NETWORK, ErrorClass.TIMEOUT, ErrorClass.SERVER, ErrorClass.RATE_LIMITED}
)

_STATUS_CLASSES: dict[int, ErrorClass] = {
    400: ErrorClass.VALIDATION,
    401: ErrorClass.PERMISSION,
    403: ErrorClass.PERMISSION,
    404: ErrorClass.NOT_FOUND,
    408: ErrorClass.TIMEOUT,
    409: ErrorClass.CONFLICT,
    422: ErrorClass.VALIDATION,
    429: ErrorClass.RATE_LIMITED,
}


class StoreError(Exception):
    """Failure reported by a tracker store, optionally carrying an HTTP-like status."""

    def __init__(self, message: str, *, status: int | None = None, error_class: ErrorClass | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.error_class = ErrorClass(error_class) if error_class is not None else None

    def __repr__(self) -> str:
        return f"StoreError({self.message!r}, status={self.status!r}, error_class={self.error_class!r})"


class OperationCancelled(Exception):
    def __init__(self, op_id: str) -> None:
        super().__init__(f"operation cancelled: {op_id}")
        self.op_id = op_id


class RetryExhausted(Exception):
    def __init__(self, last_error: BaseException, attempts: int) -> None:
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")
        self.last_error = last_error
        self.attempts = attempts


def classify_error(exc: BaseException) -> ErrorClass:
    if isinstance(exc, RetryExhausted):
        return classify_error(exc.last_error)
    error_class = getattr(exc, "error_class", None)
    if isinstance(error_class, ErrorClass):
        return error_class
    if isinstance(exc, TimeoutError):
        return ErrorClass.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorClass.NETWORK
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        if 500 <= status < 600:
            return ErrorClass.SERVER
        if status in _STATUS_CLASSES:
            return _STATUS_CLASSES[status]
    message = str(exc).lower()
    if "timeout" in message or "timed out" in message:
        return ErrorClass.TIMEOUT
    if "conflict" in message:
        return ErrorClass.CONFLICT
    return ErrorClass.UNKNOWN


def is_retryable(error_class: ErrorClass) -> bool:
    return ErrorClass(error_class) in RETRYABLE_CLASSES
