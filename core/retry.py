"""Bounded retry with exponential backoff for transient AWS failures."""

import re
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from logger import logger

T = TypeVar("T")

RETRYABLE_ERROR_CODES = {
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeoutException",
    "InternalError",
    "ServiceUnavailable",
}

_RETRYABLE_MESSAGE = re.compile(
    r"network|timeout|throttl|rate limit|service unavailable|internal server error|\b50[234]\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Return the sleep before retry number ``attempt`` (1-based)."""
        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)


def is_retryable_error(exc: BaseException) -> bool:
    # Connection-level failures are always transient
    if isinstance(exc, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ConnectionClosedError)):
        return True
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {}) or {}
        code = str(error.get("Code") or "")
        status = int((exc.response.get("ResponseMetadata", {}) or {}).get("HTTPStatusCode") or 0)
        if code in RETRYABLE_ERROR_CODES or status >= 500:
            return True
        # Anything else the service answered with is a caller error (404, 403, validation)
        return False
    return bool(_RETRYABLE_MESSAGE.search(f"{type(exc).__name__} {exc}"))


def retry_call(
    operation: str,
    fn: Callable[[], T],
    *,
    policy: Optional[RetryPolicy] = None,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``fn`` and retry transient failures with capped exponential backoff.

    Non-retryable errors are raised on the first failure; the last error is
    raised once ``policy.max_retries`` retries are spent.
    """
    policy = policy or RetryPolicy()
    attempt = 0
    while True:
        try:
            result = fn()
        except Exception as exc:
            attempt += 1
            if not is_retryable(exc):
                logger.error("Operation failed with non-retryable error", operation=operation, attempt=attempt, error=str(exc))
                raise
            if attempt > policy.max_retries:
                logger.error(
                    "Operation failed after all retries exhausted",
                    operation=operation,
                    total_attempts=attempt,
                    max_retries=policy.max_retries,
                    error=str(exc),
                )
                raise
            delay = policy.delay_for(attempt)
            logger.warning("Retrying operation", operation=operation, attempt=attempt, delay_seconds=delay, error=str(exc))
            sleep(delay)
            continue
        if attempt:
            logger.info("Operation succeeded after retry", operation=operation, total_attempts=attempt + 1)
        return result
