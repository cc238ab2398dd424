"""
Backoff policy and gateway error types.

Two consumers share this module:
  - the status poller, which never raises and instead stretches its
    polling interval after each failed check (capped exponential growth);
  - one-shot gateway calls (fetching an existing PIX charge), which are
    retried in place with exponential backoff on transient failures
    (408/429/5xx, transport errors). Permanent 4xx errors are not retried.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from pix_poller.models.enums import ChargeStatus

logger = logging.getLogger("pix_poller.backoff")

RETRIABLE_STATUS_CODES = {408, 429, 502, 503, 504}
MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 30.0


class GatewayError(Exception):
    """Base exception for backend/gateway call failures."""

    def __init__(self, message: str, status_code: Optional[int] = None, retriable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retriable = retriable


class RateLimitError(GatewayError):
    """429 Too Many Requests from the backend."""

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None):
        super().__init__(message, status_code=429, retriable=True)
        self.retry_after = retry_after


class PermanentError(GatewayError):
    """Non-retriable error (e.g. unknown payment, bad request)."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code=status_code, retriable=False)


def error_for_status(status_code: int, message: str, retry_after: Optional[str] = None) -> GatewayError:
    """Map a non-2xx HTTP status to the matching GatewayError subclass."""
    if status_code == 429:
        delay = None
        if retry_after:
            try:
                delay = float(retry_after)
            except ValueError:
                delay = None
        return RateLimitError(message, retry_after=delay)
    if status_code in RETRIABLE_STATUS_CODES or status_code >= 500:
        return GatewayError(message, status_code=status_code, retriable=True)
    return PermanentError(message, status_code=status_code)


def backoff_interval_ms(base_ms: int, failures: int, growth: float, ceiling_ms: int) -> int:
    """
    Delay before the next check after `failures` consecutive failed checks.

    base * growth ** failures, clamped to the ceiling. With the defaults
    (5000ms, 1.5, 30000ms): 7500, 11250, 16875, 25312, 30000, 30000, ...
    """
    if failures <= 0:
        return min(base_ms, ceiling_ms)
    return int(min(ceiling_ms, base_ms * growth ** failures))


def interval_for_status(status: str, current_ms: int, pending_ms: int, processing_ms: int) -> int:
    """
    Polling interval after a successful check returned `status`.

    Poll fast while the gateway is processing, at the medium rate while
    pending. Any other value keeps the current interval.
    """
    if status == ChargeStatus.PROCESSING.value:
        return processing_ms
    if status == ChargeStatus.PENDING.value:
        return pending_ms
    return current_ms


def clamp_interval(value_ms: int, floor_ms: int, ceiling_ms: int) -> int:
    return max(floor_ms, min(ceiling_ms, value_ms))


async def with_retry(
    func: Callable[..., Any],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with exponential backoff on retriable errors.

    Args:
        func: Async callable to execute.
        max_retries: Maximum number of retry attempts.

    Returns:
        The result of the function call.

    Raises:
        GatewayError: On permanent failure or exhausted retries.
    """
    delay = BASE_DELAY
    last_error = None

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except GatewayError as e:
            last_error = e
            if not e.retriable:
                raise

            if attempt < max_retries:
                sleep_for = min(delay, MAX_DELAY)
                if isinstance(e, RateLimitError) and e.retry_after:
                    sleep_for = min(e.retry_after, MAX_DELAY)

                logger.warning(
                    "Retriable error on attempt %d/%d: %s (sleeping %.1fs)",
                    attempt + 1,
                    max_retries + 1,
                    e,
                    sleep_for,
                )
                await asyncio.sleep(sleep_for)
                delay = min(delay * 2, MAX_DELAY)
            else:
                logger.error("Exhausted %d retries for gateway call: %s", max_retries, e)
                raise

    raise last_error or GatewayError("Unknown error after retries")
