from __future__ import annotations

"""
Leading + trailing throttle driven by an injectable scheduler.

The first request in a quiet period runs immediately; requests arriving while
the window is open collapse into one trailing call when it closes.  The window
may change between requests; a shorter window pulls an already scheduled
trailing call forward.
"""

import asyncio
import logging
from typing import Callable, Optional, Protocol

LOGGER = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def now(self) -> float: ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)

    def now(self) -> float:
        return self.loop.time()


def running_loop_scheduler() -> Optional[AsyncioScheduler]:
    """Scheduler bound to the current event loop, or None outside one."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    return AsyncioScheduler(loop)


class FlushThrottle:
    def __init__(
        self,
        func: Callable[[], None],
        scheduler: Scheduler,
        *,
        window: float = 0.2,
    ) -> None:
        self.func = func
        self.scheduler = scheduler
        self.window = window
        self._handle: Optional[TimerHandle] = None
        self._deadline: Optional[float] = None
        self._last_call: Optional[float] = None
        self._trailing = False

    @property
    def pending(self) -> bool:
        """True when a trailing call is waiting for the window to close."""
        return self._trailing

    def __call__(self, window: Optional[float] = None) -> None:
        window = self.window if window is None else window
        if window <= 0:
            self.cancel()
            self._invoke()
            return

        now = self.scheduler.now()
        quiet = self._handle is None and (
            self._last_call is None or now - self._last_call >= window
        )
        if quiet:
            self._invoke()
            self._arm(window)
            return

        self._trailing = True
        deadline = (now if self._last_call is None else self._last_call) + window
        if self._handle is None or (
            self._deadline is not None and deadline < self._deadline
        ):
            self._cancel_timer()
            self._arm(window, deadline=deadline)

    def flush(self) -> None:
        """Run a pending trailing call right away."""
        trailing = self._trailing
        self.cancel()
        if trailing:
            self._invoke()

    def cancel(self) -> None:
        self._cancel_timer()
        self._trailing = False

    def _arm(self, window: float, *, deadline: Optional[float] = None) -> None:
        now = self.scheduler.now()
        self._deadline = now + window if deadline is None else deadline
        self._handle = self.scheduler.call_later(
            max(0.0, self._deadline - now), lambda: self._on_timer(window)
        )

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._deadline = None

    def _on_timer(self, window: float) -> None:
        self._handle = None
        self._deadline = None
        if not self._trailing:
            return
        self._trailing = False
        self._invoke()
        self._arm(window)

    def _invoke(self) -> None:
        self._last_call = self.scheduler.now()
        self.func()


__all__ = [
    "AsyncioScheduler",
    "FlushThrottle",
    "Scheduler",
    "TimerHandle",
    "running_loop_scheduler",
]
