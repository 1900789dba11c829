"""Bounded retries for calls against the proposal API.

Each attempt runs under ``asyncio.wait_for``, so a timed-out attempt is
cancelled rather than left running. Errors are bucketed into categories
with a user-facing message; the raw transport error is only kept as the
exception cause.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple

import httpx

from proposal_workflow.config import settings

logger = logging.getLogger(__name__)

TIMEOUT = "timeout"
NETWORK = "network"
SERVER_ERROR = "server_error"
AUTH_EXPIRED = "auth_expired"
NOT_FOUND = "not_found"
VALIDATION = "validation"
CONFLICT = "conflict"
STORAGE_REJECTED = "storage_rejected"
UNKNOWN = "unknown"

USER_MESSAGES = {
    TIMEOUT: "Request timed out. The server is taking too long to respond. Please try again.",
    NETWORK: "Network error. Please check your connection and try again.",
    SERVER_ERROR: "Server error. Please try again later.",
    AUTH_EXPIRED: "Authentication expired. Please sign in again.",
    NOT_FOUND: "Proposal not found. Please ensure you have saved your proposal before submitting.",
    VALIDATION: "The proposal was rejected by the server. Please check it and try again.",
    CONFLICT: "The proposal was changed by someone else. Please reload it and try again.",
    STORAGE_REJECTED: "The server could not store the proposal. Please check it and try again.",
    UNKNOWN: "Failed to submit proposal. Please try again.",
}

BACKOFF_LINEAR = "linear"
BACKOFF_EXPONENTIAL = "exponential"


class SubmissionError(Exception):
    """Classified failure of a retried operation."""

    def __init__(self, category: str, attempts: int, retryable: bool):
        self.category = category
        self.user_message = USER_MESSAGES.get(category, USER_MESSAGES[UNKNOWN])
        self.attempts = attempts
        self.retryable = retryable
        super().__init__(self.user_message)


@dataclass
class RetryPolicy:
    max_retries: int = 3
    timeout: float = 30.0
    backoff: str = BACKOFF_EXPONENTIAL
    base_delay: float = 1.0
    max_delay: float = 10.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.CLIENT_MAX_RETRIES,
            timeout=settings.CLIENT_TIMEOUT_SECONDS,
            backoff=settings.CLIENT_BACKOFF,
            base_delay=settings.CLIENT_BACKOFF_BASE_SECONDS,
            max_delay=settings.CLIENT_BACKOFF_MAX_SECONDS,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-indexed)."""
        if self.backoff == BACKOFF_LINEAR:
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay * (2 ** (attempt - 1))
        return max(0.0, min(delay, self.max_delay))


def _classify_status(status_code: int) -> Tuple[str, bool]:
    if status_code == 401:
        return AUTH_EXPIRED, False
    if status_code == 404:
        return NOT_FOUND, False
    if status_code == 409:
        return CONFLICT, False
    if status_code == 408:
        return TIMEOUT, True
    if status_code == 429 or status_code >= 500:
        return SERVER_ERROR, True
    if 400 <= status_code < 500:
        return VALIDATION, False
    return UNKNOWN, False


# Server error codes that decide retryability regardless of the HTTP status
_ERROR_CODES = {
    "TRANSIENT_IO": (SERVER_ERROR, True),
    "PERSISTENT_IO": (STORAGE_REJECTED, False),
    "CONFLICT": (CONFLICT, False),
    "NOT_FOUND": (NOT_FOUND, False),
    "VALIDATION_ERROR": (VALIDATION, False),
    "INVALID_TRANSITION": (VALIDATION, False),
}


def _error_code(exc: BaseException) -> Optional[str]:
    """Code from an ``{"detail": {"error": {"code": ...}}}`` body, or an ``error_code`` attribute."""
    code = getattr(exc, "error_code", None)
    if isinstance(code, str):
        return code
    if not isinstance(exc, httpx.HTTPStatusError):
        return None
    try:
        body = exc.response.json()
    except ValueError:
        return None
    detail = body.get("detail") if isinstance(body, dict) else None
    error = detail.get("error") if isinstance(detail, dict) else None
    code = error.get("code") if isinstance(error, dict) else None
    return code if isinstance(code, str) else None


def classify_error(exc: BaseException) -> Tuple[str, bool]:
    """Return ``(category, retryable)`` for an attempt's exception."""
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return TIMEOUT, True

    code = _error_code(exc)
    if code in _ERROR_CODES:
        return _ERROR_CODES[code]

    if isinstance(exc, httpx.HTTPStatusError):
        return _classify_status(exc.response.status_code)
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return NETWORK, True

    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return _classify_status(status_code)
    return UNKNOWN, False


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    max_retries: Optional[int] = None,
    timeout: Optional[float] = None,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """Run ``operation`` up to ``max_retries`` times in total.

    Retryable failures (timeout, network, 5xx) are retried after the
    policy's backoff delay; anything else is raised at once. The final
    failure is raised as ``SubmissionError`` chained to the last exception.
    """
    policy = policy or RetryPolicy.from_settings()
    attempts_allowed = max(1, max_retries if max_retries is not None else policy.max_retries)
    per_attempt = timeout if timeout is not None else policy.timeout

    attempt = 0
    while True:
        attempt += 1
        try:
            return await asyncio.wait_for(operation(), per_attempt)
        except Exception as exc:
            category, retryable = classify_error(exc)
            if not retryable or attempt >= attempts_allowed:
                logger.warning(
                    f"Operation failed after {attempt} attempt(s): {category} ({type(exc).__name__})"
                )
                raise SubmissionError(category, attempt, retryable) from exc

            delay = policy.delay_for(attempt)
            logger.info(
                f"Attempt {attempt}/{attempts_allowed} failed with {category}, retrying in {delay:.2f}s"
            )
            await sleep(delay)
