"""Bounded polling with backoff.

Used only for *visibility* checks after a mutation has already succeeded
(for example waiting until a freshly installed package shows up in the
listing). Mutating commands themselves are never retried.

Delay before attempt ``n + 1`` for a base delay ``d``:

* fixed -- ``d``
* linear -- ``d * n``
* exponential -- ``d * 2 ** (n - 1)``
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, TypeVar, Union

from extmgr.models import Backoff, PollingConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, delay: float, backoff: Backoff) -> float:
    """Delay in seconds to wait after failed attempt number *attempt* (1-based)."""
    if backoff is Backoff.EXPONENTIAL:
        return delay * (2 ** (attempt - 1))
    if backoff is Backoff.LINEAR:
        return delay * attempt
    return delay


async def retry_with_backoff(
    operation: Callable[[], Awaitable[Optional[T]]],
    max_attempts: int = 5,
    delay: float = 0.1,
    backoff: Backoff = Backoff.EXPONENTIAL,
) -> Optional[T]:
    """Call *operation* until it returns something other than ``None``.

    Args:
        operation: Coroutine function returning a value, or ``None`` to ask
            for another attempt.
        max_attempts: Attempt budget.
        delay: Base delay in seconds.
        backoff: Delay growth strategy.

    Returns:
        The first non-``None`` result, or ``None`` once the budget is spent.
    """
    for attempt in range(1, max_attempts + 1):
        result = await operation()
        if result is not None:
            return result
        if attempt < max_attempts:
            wait = backoff_delay(attempt, delay, backoff)
            logger.debug("Attempt %d/%d not ready, sleeping %.3fs", attempt, max_attempts, wait)
            await asyncio.sleep(wait)
    return None


async def wait_for_condition(
    condition: Callable[[], Union[bool, Awaitable[bool]]],
    max_attempts: int = 5,
    delay: float = 0.1,
    backoff: Backoff = Backoff.EXPONENTIAL,
) -> bool:
    """Poll *condition* (sync or async) until it is true or attempts run out."""

    async def _check() -> Optional[bool]:
        value = condition()
        if inspect.isawaitable(value):
            value = await value
        return True if value else None

    return await retry_with_backoff(_check, max_attempts, delay, backoff) is True


async def wait_with_policy(
    condition: Callable[[], Union[bool, Awaitable[bool]]],
    policy: PollingConfig,
) -> bool:
    """:func:`wait_for_condition` driven by a :class:`~extmgr.models.PollingConfig`."""
    return await wait_for_condition(
        condition,
        max_attempts=policy.max_attempts,
        delay=policy.delay_ms / 1000,
        backoff=policy.backoff,
    )
