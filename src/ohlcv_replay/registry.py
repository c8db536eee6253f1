"""Provider registry: resolves a symbol to a replayable bar source.

Provider chain:
- Hosted table (PostgREST), when ``postgrest_url`` and ``postgrest_key`` are set
- yfinance
- Tiingo (needs ``TIINGO_API_KEY``)

A provider that errors out is logged and skipped. If nothing returns
usable bars, :func:`fetch` returns ``None``. Callers treat that as
"no data" and do not start playback.
"""

from __future__ import annotations

import asyncio

import aiohttp
import requests
from loguru import logger

from ohlcv_replay.config import ReplaySettings
from ohlcv_replay.exceptions import InvalidBarError
from ohlcv_replay.models import BarSource
from ohlcv_replay.providers.base import BarProvider

# Lazy imports: providers are only loaded when first used
_yfinance: BarProvider | None = None
_tiingo: BarProvider | None = None

_PROVIDER_ERRORS = (
    aiohttp.ClientError,
    requests.RequestException,
    asyncio.TimeoutError,
    OSError,
    RuntimeError,
    ValueError,
)


def _get_yfinance() -> BarProvider:
    global _yfinance
    if _yfinance is None:
        from ohlcv_replay.providers.yfinance import YFinanceProvider  # noqa: PLC0415
        _yfinance = YFinanceProvider()
    return _yfinance


def _get_tiingo() -> BarProvider:
    global _tiingo
    if _tiingo is None:
        from ohlcv_replay.providers.tiingo import TiingoProvider  # noqa: PLC0415
        _tiingo = TiingoProvider()
    return _tiingo


def pick(settings: ReplaySettings) -> list[BarProvider]:
    """Return the ordered provider chain for *settings*."""
    chain: list[BarProvider] = []
    if settings.postgrest_url and settings.postgrest_key:
        from ohlcv_replay.providers.postgrest import PostgrestProvider  # noqa: PLC0415
        chain.append(
            PostgrestProvider(settings.postgrest_url, settings.postgrest_key, settings.table)
        )
    chain.extend([_get_yfinance(), _get_tiingo()])
    return chain


async def fetch(
    settings: ReplaySettings | None = None,
    providers: list[BarProvider] | None = None,
) -> BarSource | None:
    """Fetch bars for ``settings.symbol``, trying providers in order.

    Returns the first usable result as a :class:`BarSource`, or ``None``.
    """
    settings = settings or ReplaySettings()
    symbol = settings.symbol
    for provider in providers if providers is not None else pick(settings):
        if not provider.supports(symbol):
            continue
        try:
            bars = await provider.fetch(symbol, settings.interval, settings.history_limit)
        except _PROVIDER_ERRORS as exc:
            logger.error("{} failed for {}: {}", provider.name, symbol, exc)
            continue
        valid = [bar for bar in bars or () if not bar.problems()]
        if bars and len(valid) < len(bars):
            logger.warning(
                "{}: dropped {} invalid {} bars", provider.name, len(bars) - len(valid), symbol
            )
        if not valid:
            logger.debug("{} has no bars for {}", provider.name, symbol)
            continue
        try:
            source = BarSource(symbol, valid)
        except (InvalidBarError, TypeError) as exc:
            logger.error("{} returned unusable bars for {}: {}", provider.name, symbol, exc)
            continue
        logger.info("Loaded {} bars for {} from {}", len(source), symbol, provider.name)
        return source

    logger.warning("No stock data available for {}", symbol)
    return None
