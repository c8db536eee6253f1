"""PostgREST provider: reads raw price rows from the dashboard's hosted table.

Each symbol lives in its own table of string-typed rows (``"$1,234.56"``),
newest first. Rows are fetched over the PostgREST HTTP interface and pushed
through :func:`~ohlcv_replay.ingest.normalize_rows`.
"""

from __future__ import annotations

import re

import aiohttp
from loguru import logger

from ohlcv_replay.ingest import normalize_rows
from ohlcv_replay.models import Bar
from ohlcv_replay.providers.base import BarProvider

_STOCK_RE = re.compile(r"^[A-Z]{1,5}$")
_TIMEOUT = aiohttp.ClientTimeout(total=15)


def auth_headers(key: str) -> dict[str, str]:
    """Headers PostgREST gateways expect for an anon/service key."""
    return {
        "apikey": key,
        "Authorization": f"Bearer {key}",
        "Accept": "application/json",
    }


class PostgrestProvider(BarProvider):
    """Fetches daily rows from a PostgREST endpoint (``{url}/rest/v1/{table}``).

    The table defaults to the symbol itself; pass *table* to read a fixed
    table instead. Only daily bars are stored, so other intervals return
    ``None``.
    """

    name = "postgrest"

    def __init__(self, url: str, key: str, table: str | None = None) -> None:
        self.url = url.rstrip("/")
        self.key = key
        self.table = table

    def supports(self, symbol: str) -> bool:
        return bool(self.url and self.key and _STOCK_RE.match(symbol.upper()))

    async def fetch(
        self,
        symbol: str,
        interval: str,
        limit: int,
    ) -> list[Bar] | None:
        if interval != "1d":
            return None

        table = self.table or symbol.upper()
        endpoint = f"{self.url}/rest/v1/{table}"

        async with aiohttp.ClientSession(timeout=_TIMEOUT) as session:
            async with session.get(
                endpoint, params={"select": "*"}, headers=auth_headers(self.key)
            ) as resp:
                if resp.status != 200:
                    logger.warning(
                        "PostgREST {} returned HTTP {} for {}", endpoint, resp.status, symbol
                    )
                    return None
                try:
                    rows = await resp.json(content_type=None)
                except ValueError as exc:
                    logger.warning(
                        "PostgREST {} sent a non-JSON body for {}: {}", endpoint, symbol, exc
                    )
                    return None

        if not isinstance(rows, list) or not rows:
            return None

        bars = normalize_rows(rows, symbol=symbol.upper()).bars
        return bars[-limit:] or None
