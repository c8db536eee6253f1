"""Candle animator: synthesizes an intrabar price path for one bar.

The animator already knows the bar's final values. Starting from
``bar.open`` it walks the price up to ``bar.high``, down to ``bar.low``
and then wanders inside the range. Each step of the walk is one tick:

- ``SEEK_HIGH``: move a uniform-random fraction of the gap to ``high``.
- ``SEEK_LOW``:  move a uniform-random fraction of the gap to ``low``.
- ``CONVERGE``:  step by ``±uniform(0, 1)``, clamped to ``[low, high]``.
  With ``converge_and_stop`` set, the walk snaps to ``close`` and ends
  (``DONE``) as soon as it is within ``tolerance`` of it. Otherwise it
  runs until cancelled.

Every tick publishes a fresh :class:`~ohlcv_replay.models.ActiveCandle`
whose high/low only ever widen.
"""

from __future__ import annotations

import random
from collections.abc import Callable

from loguru import logger

from ohlcv_replay.exceptions import EngineStateError
from ohlcv_replay.models import ActiveCandle, Bar, Phase, ensure_valid
from ohlcv_replay.timers import TimerHandle, Timers

TickCallback = Callable[[ActiveCandle], None]
DoneCallback = Callable[[Bar], None]

DEFAULT_TOLERANCE = 0.1
DEFAULT_SNAP_EPSILON = 0.01


class CandleAnimator:
    """Drives one bar's synthetic price path, one tick at a time.

    The animator can be stepped by hand (:meth:`step`) or attached to a
    timer service (:meth:`start`). It owns at most one timer handle;
    :meth:`cancel` releases it synchronously.

    Raises:
        InvalidBarError: if *bar* has a non-finite price or its open/close
            fall outside ``[low, high]``.
    """

    def __init__(
        self,
        bar: Bar,
        *,
        converge_and_stop: bool = False,
        tolerance: float = DEFAULT_TOLERANCE,
        snap_epsilon: float = DEFAULT_SNAP_EPSILON,
        rng: random.Random | None = None,
        on_tick: TickCallback | None = None,
        on_done: DoneCallback | None = None,
    ) -> None:
        self.bar = ensure_valid(bar)
        if tolerance < 0 or snap_epsilon < 0:
            raise ValueError("tolerance and snap_epsilon must be non-negative")
        self.converge_and_stop = converge_and_stop
        self.tolerance = tolerance
        self.snap_epsilon = snap_epsilon
        self._rng = rng or random.Random()
        self._on_tick = on_tick
        self._on_done = on_done
        self._candle = ActiveCandle.opening(self.bar)
        self._handle: TimerHandle | None = None
        self._ticks = 0

    @property
    def candle(self) -> ActiveCandle:
        return self._candle

    @property
    def phase(self) -> Phase:
        return self._candle.phase

    @property
    def done(self) -> bool:
        return self._candle.phase is Phase.DONE

    @property
    def ticks(self) -> int:
        return self._ticks

    @property
    def live(self) -> bool:
        """True while a timer is attached and still firing."""
        return self._handle is not None and not self._handle.cancelled

    def start(self, timers: Timers, period: float) -> TimerHandle:
        if self._handle is not None:
            raise EngineStateError("animator already started")
        self._handle = timers.call_every(period, self.step)
        return self._handle

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    def step(self) -> ActiveCandle:
        """Advance the synthetic price by one tick and return the new snapshot."""
        candle = self._candle
        if candle.phase is Phase.DONE:
            return candle

        price, phase = self._next_price(candle.close, candle.phase)
        if (
            phase is Phase.CONVERGE
            and self.converge_and_stop
            and abs(price - self.bar.close) < self.tolerance
        ):
            price, phase = self.bar.close, Phase.DONE

        self._candle = candle = candle.advance(price, phase)
        self._ticks += 1

        if self._on_tick is not None:
            self._on_tick(candle)
        if phase is Phase.DONE:
            logger.debug(
                "Candle {} settled at {:.4f} after {} ticks",
                self.bar.timestamp.date(), price, self._ticks,
            )
            self.cancel()
            if self._on_done is not None:
                self._on_done(candle.as_bar())
        return candle

    def _next_price(self, current: float, phase: Phase) -> tuple[float, Phase]:
        bar = self.bar
        if phase is Phase.SEEK_HIGH:
            price = current + self._rng.random() * (bar.high - current)
            if price >= bar.high or bar.high - price <= self.snap_epsilon:
                return bar.high, Phase.SEEK_LOW
            return price, phase

        if phase is Phase.SEEK_LOW:
            price = current - self._rng.random() * (current - bar.low)
            if price <= bar.low or price - bar.low <= self.snap_epsilon:
                return bar.low, Phase.CONVERGE
            return price, phase

        direction = -1.0 if self._rng.random() < 0.5 else 1.0
        price = current + direction * self._rng.random()
        return min(bar.high, max(bar.low, price)), phase
