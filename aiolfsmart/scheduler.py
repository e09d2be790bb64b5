"""Cancellable timers on the asyncio event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from typing import Protocol

_LOGGER = logging.getLogger(__name__)


class _Handle(Protocol):
    def cancel(self) -> None: ...


class ScheduledTask:
    """A one-shot or repeating callback that can be cancelled by handle.

    Once cancelled the callback never runs again, even if the underlying
    timer already fired and is queued on the loop.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        delay: float,
        callback: Callable[[], None],
        repeat: bool = False,
    ) -> None:
        self._scheduler = scheduler
        self._delay = delay
        self._callback = callback
        self._repeat = repeat
        self._cancelled = False
        self._done = False
        self._handle: _Handle = scheduler._schedule(delay, self._run)

    @property
    def active(self) -> bool:
        """Return True while the callback may still fire."""
        return not (self._cancelled or self._done)

    def cancel(self) -> None:
        """Cancel the task; safe to call more than once."""
        self._cancelled = True
        self._handle.cancel()

    def _run(self) -> None:
        if self._cancelled:
            return
        if self._repeat:
            self._handle = self._scheduler._schedule(self._delay, self._run)
        else:
            self._done = True
        self._callback()


class Scheduler:
    """Creates ScheduledTasks backed by ``loop.call_later``."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def time(self) -> float:
        """Return the monotonic time used for elapsed-time accounting."""
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """Run callback once after delay seconds."""
        return ScheduledTask(self, delay, callback)

    def call_every(
        self, interval: float, callback: Callable[[], None]
    ) -> ScheduledTask:
        """Run callback every interval seconds until cancelled."""
        return ScheduledTask(self, interval, callback, repeat=True)

    def _schedule(self, delay: float, callback: Callable[[], None]) -> _Handle:
        return self.loop.call_later(delay, callback)
