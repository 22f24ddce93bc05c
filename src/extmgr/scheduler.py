"""Periodic background callbacks on the running event loop.

A :class:`Scheduler` is an ordinary value owned by whoever needs it (the
:class:`~extmgr.session.Session`), so tests and concurrent sessions never
share timer state.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[None]]]


class Scheduler:
    """Runs one callback every *interval* seconds until stopped.

    Starting an already running scheduler replaces the previous schedule.
    An exception raised by the callback is logged and the schedule keeps
    running.

    Example::

        scheduler = Scheduler()
        scheduler.start(3600, check_updates)
        ...
        scheduler.stop()
    """

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task[None]] = None
        self._interval: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval(self) -> Optional[float]:
        """Current interval in seconds, or ``None`` when stopped."""
        return self._interval if self.is_running else None

    def start(self, interval: float, callback: Callback) -> None:
        """Schedule *callback* every *interval* seconds.

        Must be called from within a running event loop.

        Raises:
            ValueError: If *interval* is not positive.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.stop()
        self._interval = interval
        self._task = asyncio.get_running_loop().create_task(self._run(interval, callback))
        logger.debug("Scheduler started (every %gs)", interval)

    def stop(self) -> None:
        """Cancel the schedule. Safe to call when not running."""
        if self._task is not None:
            self._task.cancel()
            logger.debug("Scheduler stopped")
        self._task = None
        self._interval = None

    async def _run(self, interval: float, callback: Callback) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Scheduled callback failed")
