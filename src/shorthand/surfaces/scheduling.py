"""Timer seam used by debounced input handling and topology re-scans."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

__all__ = ["Cancellable", "Scheduler", "AsyncioScheduler", "Debouncer"]

LOGGER = logging.getLogger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Anything that can run ``callback`` after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        ...


class AsyncioScheduler:
    """Schedules callbacks on an asyncio loop (the running one by default)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), callback)


class Debouncer:
    """Coalesces bursts of :meth:`trigger` calls into one callback run.

    A trigger cancels and replaces any run that has not fired yet, so at most
    one run is ever pending.
    """

    __slots__ = ("_scheduler", "_delay", "_callback", "_handle", "name")

    def __init__(
        self,
        scheduler: Scheduler,
        delay_ms: int,
        callback: Callable[[], None],
        *,
        name: str = "",
    ) -> None:
        self._scheduler = scheduler
        self._delay = max(0, delay_ms) / 1000.0
        self._callback = callback
        self._handle: Cancellable | None = None
        self.name = name

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        self.cancel()
        self._handle = self._scheduler.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()

    def flush(self) -> None:
        """Run a pending callback immediately."""

        if self._handle is not None:
            self.cancel()
            self._callback()

    def _fire(self) -> None:
        self._handle = None
        try:
            self._callback()
        except Exception:
            LOGGER.exception("Debounced callback %s failed", self.name or self._callback)
