"""
Retry utility for transient failures such as timeouts and dropped connections
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from x402_agent.exceptions import (
    GatewayHTTPError,
    TransportError,
    WalletTransportError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = (
    "timeout",
    "Connection terminated",
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
    "ECONNREFUSED",
)


@dataclass
class RetryState:
    """Per-operation retry bookkeeping"""

    attempt: int = 0
    last_error: Optional[BaseException] = None
    delay: float = 0.0
    delays: list[float] = field(default_factory=list)


def is_retryable_error(error: BaseException, attempt: int = 0) -> bool:
    """
    Check if an error is transient.

    Timeouts, connection resets/refusals, DNS failures and 5xx responses whose
    detail looks transient are retryable. 4xx responses (402 included) never are.
    """
    if isinstance(error, (TransportError, WalletTransportError)):
        return True
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, asyncio.TimeoutError)):
        return True
    if isinstance(error, (ConnectionError, OSError)):
        return True

    if isinstance(error, GatewayHTTPError):
        if 500 <= error.status_code < 600:
            details = str(error.error_body.get("details") or error.error_body.get("error") or "")
            return any(marker in details for marker in _TRANSIENT_MARKERS)
        return False

    message = str(error)
    return any(marker in message for marker in _TRANSIENT_MARKERS[2:])


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    should_retry: Callable[[BaseException, int], bool] = is_retryable_error,
    on_retry: Optional[Callable[[BaseException, int], None]] = None,
    state: Optional[RetryState] = None,
) -> T:
    """
    Run *operation* with exponential backoff.

    The delay before retry *n* is ``base_delay * 2 ** (n - 1)``. There is no
    delay ceiling; callers bound ``max_attempts``. When attempts are exhausted
    or the error is not retryable, the last error is re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    state = state if state is not None else RetryState()

    for attempt in range(1, max_attempts + 1):
        state.attempt = attempt
        try:
            return await operation()
        except Exception as e:
            state.last_error = e
            if attempt >= max_attempts or not should_retry(e, attempt):
                raise

            if on_retry is not None:
                on_retry(e, attempt)

            state.delay = base_delay * (2 ** (attempt - 1))
            state.delays.append(state.delay)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.2fs",
                attempt,
                max_attempts,
                e,
                state.delay,
            )
            await asyncio.sleep(state.delay)

    # unreachable: the loop either returns or raises
    raise RuntimeError("retry loop exited without result")
