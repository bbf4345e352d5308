"""Bounded retry with exponential backoff for fallible network reads.

``with_retry`` runs an operation up to ``max_attempts`` times, sleeping
``base_delay * 2**attempt`` between attempts (never after the last one), and
re-raises the last error once attempts are exhausted. It has no deadline of its
own: callers bound it with ``asyncio.wait_for``. Cancellation propagates
immediately because ``asyncio.CancelledError`` is not an ``Exception``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 5,
    base_delay: float = 2.0,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: SleepFn = asyncio.sleep,
    label: str = "operation",
) -> T:
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    last_error: BaseException | None = None

    for attempt in range(max_attempts):
        try:
            return await operation()
        except retry_on as exc:
            last_error = exc
            if attempt < max_attempts - 1:
                delay = base_delay * (2 ** attempt)
                logger.info(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    label, attempt + 1, max_attempts, exc, delay,
                )
                await sleep(delay)

    logger.warning("%s failed after %d attempts: %s", label, max_attempts, last_error)
    raise last_error
