"""Bounded polling with exponential backoff."""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import SourceTimeoutError, SourceUnavailableError

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: bool = True) -> float:
    """Delay before retry number ``attempt`` (0-based): base * 2**attempt, capped."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    if jitter:
        # ±20% so that concurrent pollers do not line up
        delay *= random.uniform(0.8, 1.2)
    return delay


async def poll_until(
    fetch: Callable[[], Awaitable[Optional[T]]],
    *,
    attempts: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 16.0,
    timeout: Optional[float] = None,
    description: str = "resource",
) -> T:
    """Call ``fetch`` until it returns something other than ``None``.

    ``SourceUnavailableError`` raised by ``fetch`` counts as a failed attempt.
    Gives up with ``SourceTimeoutError`` after ``attempts`` tries or once
    ``timeout`` seconds have passed overall.
    """
    if attempts <= 0:
        raise ValueError("attempts must be positive")

    async def _poll() -> T:
        last_error: Optional[BaseException] = None
        for attempt in range(attempts):
            try:
                value = await fetch()
            except SourceUnavailableError as exc:
                last_error = exc
            else:
                if value is not None:
                    return value
            if attempt < attempts - 1:
                await asyncio.sleep(backoff_delay(attempt, base_delay, max_delay))

        message = f"{description} not available after {attempts} attempts"
        if last_error is not None:
            message += f": {last_error}"
        raise SourceTimeoutError(message) from last_error

    try:
        return await asyncio.wait_for(_poll(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise SourceTimeoutError(f"{description} not available within {timeout}s") from exc
