"""Retry policy for model calls: transient failures back off and try again."""
import logging
import re
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT_SECONDS = 1
DEFAULT_MAX_WAIT_SECONDS = 10

# 529 is Anthropic's "overloaded"
TRANSIENT_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504, 529})

_TRANSIENT_TYPE_MARKERS = ("ratelimit", "timeout", "connect", "internalserver", "overloaded")
_TRANSIENT_MESSAGE_MARKERS = (
    "rate limit",
    "overloaded",
    "timeout",
    "timed out",
    "connection",
    "name or service not known",
    "temporary failure in name resolution",
)
_STATUS_IN_MESSAGE = re.compile(r"\b(429|5\d\d)\b")


def _status_code(exception: BaseException) -> Optional[int]:
    """HTTP status carried by OpenAI/Anthropic/httpx errors, if any."""
    status = getattr(exception, "status_code", None)
    if status is None:
        status = getattr(getattr(exception, "response", None), "status_code", None)
    return status if isinstance(status, int) else None


def is_retryable_error(exception: BaseException) -> bool:
    """
    Decide whether a failed model call should be retried.

    Rate limits, 5xx responses, timeouts and connection/DNS failures are
    transient. Authentication, bad requests, missing resources and exhausted
    quota are not; neither is anything unrecognised.
    """
    error_str = str(exception).lower()

    # OpenAI reports an empty balance as a 429
    if "quota" in error_str:
        return False

    status = _status_code(exception)
    if status is not None:
        return status in TRANSIENT_STATUS_CODES

    exception_type = type(exception).__name__.lower()
    if any(marker in exception_type for marker in _TRANSIENT_TYPE_MARKERS):
        return True

    if _STATUS_IN_MESSAGE.search(error_str):
        return True

    return any(marker in error_str for marker in _TRANSIENT_MESSAGE_MARKERS)


def create_async_retrying(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait_seconds: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
) -> AsyncRetrying:
    """
    Build a tenacity AsyncRetrying that only retries transient errors.

    Args:
        max_attempts: Maximum number of attempts
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries
    """
    return AsyncRetrying(
        retry=retry_if_exception(is_retryable_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_seconds,
            max=max_wait_seconds,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


async def retry_async_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait_seconds: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
    **kwargs: Any,
) -> T:
    """
    Await func(*args, **kwargs), retrying transient failures with backoff.

    Non-retryable errors are raised immediately; after the last attempt the
    original exception is re-raised.
    """
    retrying = create_async_retrying(max_attempts, min_wait_seconds, max_wait_seconds)
    return await retrying(func, *args, **kwargs)
