"""Bounded polling primitive shared by the browser-facing stages."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Tuple

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)


def _is_empty(value: Any) -> bool:
    return value is None or value is False


async def poll_until(
    probe: Callable[[], Awaitable[Any]],
    *,
    timeout: float,
    interval: float = 0.15,
) -> Tuple[bool, Optional[Any]]:
    """Call ``probe`` until it returns a truthy value or ``timeout`` elapses.

    Exceptions raised by the probe count as a miss. Returns ``(found, value)``;
    the probe always runs at least once, even with a zero timeout.
    """
    retrying = AsyncRetrying(
        stop=stop_after_delay(max(timeout, 0)),
        wait=wait_fixed(interval),
        retry=retry_if_result(_is_empty) | retry_if_exception_type(Exception),
    )
    try:
        value = await retrying(probe)
    except RetryError:
        return False, None
    return True, value
