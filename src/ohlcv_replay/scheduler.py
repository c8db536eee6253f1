"""Playback scheduler: feeds bars from a source into the displayed series.

At start the first bar goes live immediately, opening at its open price.
Every ``cadence`` seconds the scheduler finalizes the live bar (if its
animator has not already finished) and starts the next one. Once the source
runs out, the cadence timer stops and the last animator is left to finish
on its own.

Only one animator is live at a time. When the scheduler hands the slot to a
new bar, it cancels the old animator's timer before the new animator exists.
"""

from __future__ import annotations

import random
from collections.abc import Callable

from loguru import logger

from ohlcv_replay.animator import DEFAULT_SNAP_EPSILON, DEFAULT_TOLERANCE, CandleAnimator
from ohlcv_replay.exceptions import EngineStateError, NoDataError
from ohlcv_replay.models import ActiveCandle, Bar, BarSource, Finalization, FinalizePolicy
from ohlcv_replay.series import DisplayedSeries
from ohlcv_replay.timers import TimerHandle, Timers


class PlaybackScheduler:
    """Replays a :class:`BarSource` on a timer service.

    Callbacks:
        on_bar_start(bar):      a source bar went live.
        on_tick(candle):        the live candle moved.
        on_series_append(bar):  a bar was finalized into the series.
        on_exhausted():         the cadence timer stopped (no bars left to start).
    """

    def __init__(
        self,
        source: BarSource,
        timers: Timers,
        series: DisplayedSeries | None = None,
        *,
        cadence: float,
        tick_period: float = 1.0,
        finalize_policy: FinalizePolicy = FinalizePolicy.SOURCE,
        warmup_bars: int = 0,
        converge_and_stop: bool = False,
        tolerance: float = DEFAULT_TOLERANCE,
        snap_epsilon: float = DEFAULT_SNAP_EPSILON,
        rng: random.Random | None = None,
        on_bar_start: Callable[[Bar], None] | None = None,
        on_tick: Callable[[ActiveCandle], None] | None = None,
        on_series_append: Callable[[Bar], None] | None = None,
        on_exhausted: Callable[[], None] | None = None,
    ) -> None:
        if cadence <= 0 or tick_period <= 0:
            raise ValueError("cadence and tick_period must be positive")
        if warmup_bars < 0:
            raise ValueError("warmup_bars must be >= 0")
        self.source = source
        self.series = series if series is not None else DisplayedSeries()
        self.cadence = cadence
        self.tick_period = tick_period
        self.finalize_policy = finalize_policy
        self.warmup_bars = warmup_bars
        self.converge_and_stop = converge_and_stop
        self.tolerance = tolerance
        self.snap_epsilon = snap_epsilon
        self.last_finalization: Finalization | None = None

        self._timers = timers
        self._rng = rng or random.Random()
        self._on_bar_start = on_bar_start
        self._on_tick = on_tick
        self._on_series_append = on_series_append
        self._on_exhausted = on_exhausted

        self._index = -1
        self._animator: CandleAnimator | None = None
        self._timer: TimerHandle | None = None
        self._started = False
        self._exhausted = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def animator(self) -> CandleAnimator | None:
        return self._animator

    @property
    def active_candle(self) -> ActiveCandle | None:
        return self._animator.candle if self._animator is not None else None

    @property
    def index(self) -> int:
        """Source index of the bar most recently started (-1 before start)."""
        return self._index

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.cancelled

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def complete(self) -> bool:
        """True once every source bar has been finalized."""
        return self._exhausted and self._animator is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._started:
            raise EngineStateError("scheduler already started")
        if len(self.source) == 0:
            raise NoDataError(f"no bars to replay for {self.source.symbol}")
        self._started = True

        warmup = min(self.warmup_bars, len(self.source))
        for bar in self.source[:warmup]:
            self._append(bar)
        if warmup == len(self.source):
            logger.info("All {} bars consumed by warmup; nothing to animate", warmup)
            self._mark_exhausted()
            return

        logger.info(
            "Replaying {} bars of {} (cadence {}s, tick {}s, from bar {})",
            len(self.source), self.source.symbol, self.cadence, self.tick_period, warmup,
        )
        self._begin(warmup)
        self._timer = self._timers.call_every(self.cadence, self._on_cadence)

    def finish(self) -> None:
        """Stop the cadence timer and finalize the live bar now."""
        if self._timer is not None:
            self._timer.cancel()
        self._finalize_current()

    def stop(self) -> None:
        """Cancel both timers without finalizing anything."""
        if self._timer is not None:
            self._timer.cancel()
        if self._animator is not None:
            self._animator.cancel()
            self._animator = None
        logger.debug("Scheduler for {} stopped at bar {}", self.source.symbol, self._index)

    # ------------------------------------------------------------------
    # Timer callbacks
    # ------------------------------------------------------------------

    def _on_cadence(self) -> None:
        nxt = self._index + 1
        if nxt >= len(self.source):
            self._mark_exhausted()
            return
        self._finalize_current()
        self._begin(nxt)

    def _begin(self, index: int) -> None:
        bar = self.source[index]
        self._index = index

        def done(_final: Bar) -> None:
            # Stale animators are cancelled before they can get here; check anyway.
            if self._animator is animator:
                self._finalize_current()

        animator = CandleAnimator(
            bar,
            converge_and_stop=self.converge_and_stop,
            tolerance=self.tolerance,
            snap_epsilon=self.snap_epsilon,
            rng=self._rng,
            on_tick=self._on_tick,
            on_done=done,
        )
        self._animator = animator
        logger.debug("Bar {} live at {:.4f}", bar.timestamp.date(), bar.open)
        if self._on_bar_start is not None:
            self._on_bar_start(bar)
        animator.start(self._timers, self.tick_period)

    def _finalize_current(self) -> None:
        animator = self._animator
        if animator is None:
            return
        self._animator = None
        animator.cancel()

        finalization = Finalization(source=animator.bar, animated=animator.candle.as_bar())
        self.last_finalization = finalization
        self._append(finalization.pick(self.finalize_policy))

    def _append(self, bar: Bar) -> None:
        self.series.append(bar)
        if self._on_series_append is not None:
            self._on_series_append(bar)

    def _mark_exhausted(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._exhausted = True
        logger.info("Source {} exhausted after {} bars", self.source.symbol, len(self.source))
        if self._on_exhausted is not None:
            self._on_exhausted()
