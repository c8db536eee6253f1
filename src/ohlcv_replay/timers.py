"""Periodic timers for the two replay timer domains.

Both the candle animator (one tick per ``tick_seconds``) and the playback
scheduler (one bar per ``cadence_seconds``) schedule work through a
:class:`Timers` implementation:

- :class:`AsyncioTimers` chains ``loop.call_at`` on the running event loop.
- :class:`ManualTimers` is a virtual clock; nothing fires until
  :meth:`ManualTimers.advance` is called. Used for offline replays and tests.

Everything runs on one thread. A handle that has been cancelled never fires
again, even when its deadline is already due in the same advance. A callback
that raises cancels its own handle before the error propagates.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol

from loguru import logger

Callback = Callable[[], None]


class TimerHandle:
    """Owned handle for one periodic callback."""

    __slots__ = ("period", "callback", "_cancelled", "_on_cancel")

    def __init__(self, period: float, callback: Callback) -> None:
        if period <= 0:
            raise ValueError(f"timer period must be positive, got {period}")
        self.period = period
        self.callback = callback
        self._cancelled = False
        self._on_cancel: Callback | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop the timer. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
            self._on_cancel = None


class Timers(Protocol):
    def now(self) -> float:
        """Current time in seconds on this timer service's clock."""

    def call_every(self, period: float, callback: Callback) -> TimerHandle:
        """Run *callback* every *period* seconds, first after one period."""


class AsyncioTimers:
    """Timers backed by the asyncio event loop.

    The loop is looked up lazily so an instance can be built outside a
    coroutine and used once the loop is running.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_every(self, period: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle(period, callback)
        loop = self.loop
        # Deadlines are anchored to the first schedule so slow callbacks do not drift.
        deadline = loop.time() + period
        pending: list[asyncio.TimerHandle] = []

        def fire() -> None:
            nonlocal deadline
            pending.clear()
            if handle.cancelled:
                return
            try:
                callback()
            except Exception:
                handle.cancel()
                raise
            if handle.cancelled:
                return
            deadline += period
            pending.append(loop.call_at(deadline, fire))

        def cancel_pending() -> None:
            for timer in pending:
                timer.cancel()
            pending.clear()

        handle._on_cancel = cancel_pending
        pending.append(loop.call_at(deadline, fire))
        return handle


class ManualTimers:
    """Deterministic virtual clock.

    Example::

        timers = ManualTimers()
        timers.call_every(1.0, on_tick)
        timers.advance(60)   # fires on_tick 60 times
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_every(self, period: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle(period, callback)
        self._push(self._now + period, handle)
        return handle

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) timers."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> int:
        """Move the clock forward by *seconds*, firing everything that falls due.

        Callbacks due at the same instant fire in registration order.
        Returns the number of callbacks fired.
        """
        if seconds < 0:
            raise ValueError("cannot move the clock backwards")
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target + 1e-9:
            deadline, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = deadline
            try:
                handle.callback()
            except Exception:
                handle.cancel()
                raise
            fired += 1
            if not handle.cancelled:
                self._push(deadline + handle.period, handle)
        self._now = target
        logger.trace("Virtual clock at {:.3f}s ({} callbacks fired)", self._now, fired)
        return fired

    def _push(self, deadline: float, handle: TimerHandle) -> None:
        heapq.heappush(self._queue, (deadline, next(self._seq), handle))
