"""Tiingo provider: daily and weekly bars for US stocks and ETFs.

Requires a free Tiingo API key: https://www.tiingo.com/account/api/token
Set the ``TIINGO_API_KEY`` environment variable before use.
"""

from __future__ import annotations

import asyncio
import datetime
import os
import re

import requests
from loguru import logger

from ohlcv_replay.models import Bar
from ohlcv_replay.providers.base import BarProvider

_BASE_URL = "https://api.tiingo.com/tiingo/daily"

_RESAMPLE: dict[str, str] = {
    "1d": "daily",
    "1w": "weekly",
}

_BAR_DURATION: dict[str, datetime.timedelta] = {
    "1d": datetime.timedelta(days=1),
    "1w": datetime.timedelta(weeks=1),
}

_STOCK_RE = re.compile(r"^[A-Z]{1,5}$")


class TiingoProvider(BarProvider):
    """Fetches daily and weekly bars from the Tiingo REST API.

    If ``TIINGO_API_KEY`` is not set the provider raises ``RuntimeError`` at
    fetch time instead of quietly returning nothing, so the cause shows up
    in the logs.
    """

    name = "tiingo"

    def supports(self, symbol: str) -> bool:
        return bool(_STOCK_RE.match(symbol.upper()))

    async def fetch(
        self,
        symbol: str,
        interval: str,
        limit: int,
    ) -> list[Bar] | None:
        resample = _RESAMPLE.get(interval)
        if resample is None:
            return None

        api_key = os.getenv("TIINGO_API_KEY")
        if not api_key:
            raise RuntimeError(
                "TIINGO_API_KEY environment variable is not set. "
                "Get a free key at https://www.tiingo.com/account/api/token"
            )

        start = datetime.datetime.now(datetime.timezone.utc) - _BAR_DURATION[interval] * int(
            limit * 1.5 + 5
        )
        rows = await asyncio.to_thread(self._download, symbol.upper(), resample, start, api_key)
        if not rows:
            return None

        bars: list[Bar] = []
        for row in rows[-limit:]:
            try:
                bars.append(
                    Bar(
                        timestamp=datetime.datetime.fromisoformat(
                            row["date"].replace("Z", "+00:00")
                        ),
                        open=float(row.get("adjOpen") or row["open"]),
                        high=float(row.get("adjHigh") or row["high"]),
                        low=float(row.get("adjLow") or row["low"]),
                        close=float(row.get("adjClose") or row["close"]),
                        volume=int(row.get("adjVolume") or row.get("volume") or 0),
                    )
                )
            except (KeyError, ValueError, TypeError) as exc:
                logger.debug("tiingo: skipping {} row {}: {}", symbol, row.get("date"), exc)
                continue

        return bars or None

    @staticmethod
    def _download(
        ticker: str,
        resample: str,
        start: datetime.datetime,
        api_key: str,
    ) -> list[dict] | None:
        """Blocking Tiingo request, called via asyncio.to_thread."""
        url = f"{_BASE_URL}/{ticker}/prices"
        headers = {
            "Authorization": f"Token {api_key}",
            "Content-Type": "application/json",
        }
        params = {
            "startDate": start.strftime("%Y-%m-%d"),
            "resampleFreq": resample,
            "format": "json",
        }
        try:
            resp = requests.get(url, headers=headers, params=params, timeout=10)
        except requests.RequestException as exc:
            logger.warning("Tiingo request failed for {}: {}", ticker, exc)
            return None
        if resp.status_code != 200:
            logger.warning("Tiingo returned HTTP {} for {}", resp.status_code, ticker)
            return None
        data = resp.json()
        return data if isinstance(data, list) else None
