# src/xraytrace/client/retry.py — v1
"""Retry policy with exponential backoff for transport calls.

By default only failures that may succeed on a second attempt are retried
(timeouts, connection errors and 5xx responses); 4xx responses fail
immediately. Callers sending non-idempotent requests pass a stricter
`retry_if`.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from xraytrace.client.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for persistence calls."""

    max_attempts: int = 3
    base_delay_s: float = 0.5
    backoff_factor: float = 2.0
    jitter: bool = True


def compute_delay(config: RetryConfig, attempt: int) -> float:
    """Compute delay for a given attempt (0-based)."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    config: RetryConfig,
    operation: str = "request",
    retry_if: Callable[[TransportError], bool] | None = None,
    **kwargs: Any,
) -> Any:
    """Execute an async transport call with retry logic.

    `retry_if` narrows which failures are resent; it defaults to
    TransportError.is_retryable.

    Raises:
        TransportError: The last failure, once attempts are exhausted or the
            failure is not retryable.
    """
    attempts = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except TransportError as e:
            attempts += 1
            retryable = retry_if(e) if retry_if is not None else e.is_retryable
            if not retryable or attempts >= config.max_attempts:
                raise

            delay = compute_delay(config, attempts - 1)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                operation, attempts, config.max_attempts, delay, e,
            )
            await asyncio.sleep(delay)
