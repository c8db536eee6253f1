"""yfinance provider: daily and weekly bars for stocks, ETFs and indices."""

from __future__ import annotations

import asyncio
import datetime
import math
import re

import yfinance as yf
from loguru import logger

from ohlcv_replay.models import Bar
from ohlcv_replay.providers.base import BarProvider

# replay interval → yfinance interval
_INTERVAL_MAP: dict[str, str] = {
    "1d": "1d",
    "1w": "1wk",
}

_BAR_DURATION: dict[str, datetime.timedelta] = {
    "1d": datetime.timedelta(days=1),
    "1w": datetime.timedelta(weeks=1),
}

_STOCK_RE = re.compile(r"^(\^[A-Z]+|[A-Z]{1,5})$")
_INTL_STOCK_RE = re.compile(r"^[A-Z0-9]{1,7}\.[A-Z]{1,3}$")


class YFinanceProvider(BarProvider):
    """Fetches historical bars via yfinance.

    yfinance is synchronous; the download runs in a worker thread so the
    async interface stays non-blocking. Rows with missing prices (yfinance
    fills gaps with NaN) are dropped.
    """

    name = "yfinance"

    def supports(self, symbol: str) -> bool:
        up = symbol.upper()
        return bool(_STOCK_RE.match(up) or _INTL_STOCK_RE.match(up))

    async def fetch(
        self,
        symbol: str,
        interval: str,
        limit: int,
    ) -> list[Bar] | None:
        yf_interval = _INTERVAL_MAP.get(interval)
        if yf_interval is None:
            return None

        # Add 50 % headroom for weekends and market holidays
        start = datetime.datetime.now(datetime.timezone.utc) - _BAR_DURATION[interval] * int(
            limit * 1.5 + 5
        )

        df = await asyncio.to_thread(self._download, symbol.upper(), yf_interval, start)
        if df is None or df.empty:
            return None

        bars: list[Bar] = []
        for ts, row in df.tail(limit).iterrows():
            try:
                bar = Bar(
                    timestamp=ts.to_pydatetime(),
                    open=float(row["Open"]),
                    high=float(row["High"]),
                    low=float(row["Low"]),
                    close=float(row["Close"]),
                    volume=int(row.get("Volume", 0) or 0),
                )
            except (ValueError, KeyError, TypeError):
                continue
            if not all(math.isfinite(v) for v in (bar.open, bar.high, bar.low, bar.close)):
                logger.debug("yfinance: dropping incomplete {} bar at {}", symbol, ts)
                continue
            bars.append(bar)

        return bars or None

    @staticmethod
    def _download(ticker: str, interval: str, start: datetime.datetime):
        """Blocking yfinance fetch, called via asyncio.to_thread."""
        try:
            df = yf.Ticker(ticker).history(
                start=start.strftime("%Y-%m-%d"),
                interval=interval,
                auto_adjust=True,
            )
        except Exception as exc:  # yfinance raises a wide range of error types
            logger.warning("yfinance download failed for {}: {}", ticker, exc)
            return None
        return df if not df.empty else None
