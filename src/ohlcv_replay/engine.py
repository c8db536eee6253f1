"""Replay engine: one symbol's playback, displayed series and viewport.

Typical use inside an asyncio application::

    engine = await open_replay(ReplaySettings(symbol="AAPL"))
    if engine is None:
        ...  # no data; nothing was started
    chart.render(engine.visible())
    await engine.submit(TradeAction.BUY, sink)
    engine.close()

For offline or deterministic runs, pass a :class:`ManualTimers` and drive
the clock yourself.
"""

from __future__ import annotations

import random
from collections.abc import Callable

from loguru import logger

from ohlcv_replay import registry
from ohlcv_replay.config import ReplaySettings
from ohlcv_replay.exceptions import EngineStateError
from ohlcv_replay.log import configure_logging
from ohlcv_replay.models import ActiveCandle, Bar, BarSource
from ohlcv_replay.scheduler import PlaybackScheduler
from ohlcv_replay.series import DisplayedSeries
from ohlcv_replay.timers import AsyncioTimers, Timers
from ohlcv_replay.trades import (
    PostgrestTradeSink,
    TradeAction,
    TradeSink,
    TradeTicket,
    build_ticket,
)
from ohlcv_replay.viewport import ViewportController, ViewportWindow


class ReplayEngine:
    """Owns the scheduler, the displayed series and the viewport for one symbol."""

    def __init__(
        self,
        source: BarSource,
        *,
        settings: ReplaySettings | None = None,
        timers: Timers | None = None,
        rng: random.Random | None = None,
        on_bar_start: Callable[[Bar], None] | None = None,
        on_tick: Callable[[ActiveCandle], None] | None = None,
        on_series_append: Callable[[Bar], None] | None = None,
    ) -> None:
        self.settings = settings or ReplaySettings(symbol=source.symbol)
        self.source = source
        self.series = DisplayedSeries()
        self.viewport = ViewportController(lambda: len(self.series))
        self._rng = rng or random.Random()
        self._closed = False
        self._started = False
        self.scheduler = PlaybackScheduler(
            source,
            timers or AsyncioTimers(),
            self.series,
            cadence=self.settings.cadence_seconds,
            tick_period=self.settings.tick_seconds,
            finalize_policy=self.settings.finalize_policy,
            warmup_bars=self.settings.warmup_bars,
            converge_and_stop=self.settings.converge_and_stop,
            tolerance=self.settings.converge_tolerance,
            snap_epsilon=self.settings.snap_epsilon,
            rng=self._rng,
            on_bar_start=on_bar_start,
            on_tick=on_tick,
            on_series_append=on_series_append,
        )

    @property
    def symbol(self) -> str:
        return self.source.symbol

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_candle(self) -> ActiveCandle | None:
        return self.scheduler.active_candle

    @property
    def current_price(self) -> float | None:
        """Close of the live candle, or of the last finalized bar once playback ends."""
        candle = self.active_candle
        if candle is not None:
            return candle.close
        last = self.series.last
        return last.close if last is not None else None

    def start(self) -> bool:
        """Start playback. Returns False, without starting, when there is no data."""
        if self._closed:
            raise EngineStateError("engine is closed")
        if self._started:
            raise EngineStateError("engine already started")
        if len(self.source) == 0:
            logger.warning("No stock data available for {}; playback not started", self.symbol)
            return False
        self._started = True
        self.scheduler.start()
        return True

    def close(self) -> None:
        """Cancel the cadence timer and any live animator. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self.scheduler.stop()
        logger.info("Replay of {} closed with {} bars displayed", self.symbol, len(self.series))

    def display(self) -> list[Bar]:
        """What the chart draws: finalized bars plus the live candle."""
        return self.series.with_active(self.active_candle)

    def visible(self) -> list[Bar]:
        """The slice of :meth:`display` inside the viewport.

        The live candle sits just past the last finalized index; it is shown
        whenever the window reaches the end of the series.
        """
        bars = self.viewport.visible(self.series.snapshot())
        candle = self.active_candle
        if candle is not None and self.viewport.window.x_end >= len(self.series) - 1:
            bars.append(candle.as_bar())
        return bars

    def zoom(self, dy: float) -> ViewportWindow:
        return self.viewport.zoom(dy)

    def pan(self, ox: float) -> ViewportWindow:
        return self.viewport.pan(ox)

    def ticket(self, action: TradeAction | str, quantity: int | None = None) -> TradeTicket:
        """Price a ticket off the live candle (0 before any price exists)."""
        price = self.current_price
        return build_ticket(
            self.symbol,
            action,
            price if price is not None else 0.0,
            quantity=quantity,
            rng=self._rng,
        )

    async def submit(
        self,
        action: TradeAction | str,
        sink: TradeSink | None = None,
        quantity: int | None = None,
    ) -> TradeTicket | None:
        """Submit a ticket to *sink*; returns it on success, None if rejected.

        Without a *sink* the ticket goes to ``settings.trades_table`` on the
        configured PostgREST host.
        """
        ticket = self.ticket(action, quantity)
        if sink is None:
            sink = PostgrestTradeSink.from_settings(self.settings)
        if await sink.submit(ticket):
            return ticket
        return None


async def open_replay(
    settings: ReplaySettings | None = None,
    *,
    timers: Timers | None = None,
    rng: random.Random | None = None,
    setup_logging: bool = True,
    **callbacks,
) -> ReplayEngine | None:
    """Fetch bars for ``settings.symbol`` and start replaying them.

    Installs the loguru sink at ``settings.log_level`` unless *setup_logging*
    is False. Returns None, with nothing started, when no provider has data.
    """
    settings = settings or ReplaySettings()
    if setup_logging:
        configure_logging(settings.log_level)
    source = await registry.fetch(settings)
    if source is None:
        return None
    engine = ReplayEngine(
        source, settings=settings, timers=timers or AsyncioTimers(), rng=rng, **callbacks
    )
    engine.start()
    return engine
