"""Simulated order tickets priced off the live candle, and where they go."""

from __future__ import annotations

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiohttp
from loguru import logger

from ohlcv_replay.config import ReplaySettings
from ohlcv_replay.providers.postgrest import auth_headers

MAX_RANDOM_QUANTITY = 10
_TIMEOUT = aiohttp.ClientTimeout(total=15)


class TradeAction(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


@dataclass(slots=True, frozen=True)
class TradeTicket:
    symbol: str
    action: TradeAction
    quantity: int
    price: float

    def to_record(self) -> dict[str, Any]:
        """Row shape of the ``transactions`` table."""
        return {
            "stock": self.symbol,
            "action": self.action.value,
            "quantity": self.quantity,
            "price": self.price,
        }


def build_ticket(
    symbol: str,
    action: TradeAction | str,
    price: float,
    quantity: int | None = None,
    rng: random.Random | None = None,
) -> TradeTicket:
    """Build a ticket at *price*.

    Without an explicit *quantity* a random lot of 1-10 shares is used.
    """
    action = TradeAction(action)
    if quantity is None:
        quantity = (rng or random).randint(1, MAX_RANDOM_QUANTITY)
    if quantity <= 0:
        raise ValueError(f"quantity must be positive, got {quantity}")
    return TradeTicket(symbol=symbol.upper(), action=action, quantity=quantity, price=price)


class TradeSink(ABC):
    """Destination for submitted tickets."""

    @abstractmethod
    async def submit(self, ticket: TradeTicket) -> bool:
        """Persist *ticket*; return False (never raise) if it was not accepted."""


class MemoryTradeSink(TradeSink):
    """Keeps tickets in a list. Handy for local runs and tests."""

    def __init__(self) -> None:
        self.tickets: list[TradeTicket] = []

    async def submit(self, ticket: TradeTicket) -> bool:
        self.tickets.append(ticket)
        return True


class PostgrestTradeSink(TradeSink):
    """Inserts tickets into a PostgREST table (``{url}/rest/v1/{table}``)."""

    def __init__(self, url: str, key: str, table: str = "transactions") -> None:
        self.url = url.rstrip("/")
        self.key = key
        self.table = table

    @classmethod
    def from_settings(cls, settings: ReplaySettings) -> PostgrestTradeSink:
        """Sink for ``settings.trades_table`` on the configured PostgREST host."""
        if not (settings.postgrest_url and settings.postgrest_key):
            raise ValueError("postgrest_url and postgrest_key must be set to submit trades")
        return cls(settings.postgrest_url, settings.postgrest_key, settings.trades_table)

    async def submit(self, ticket: TradeTicket) -> bool:
        endpoint = f"{self.url}/rest/v1/{self.table}"
        headers = {**auth_headers(self.key), "Prefer": "return=minimal"}
        try:
            async with aiohttp.ClientSession(timeout=_TIMEOUT) as session:
                async with session.post(endpoint, json=[ticket.to_record()], headers=headers) as resp:
                    if resp.status not in (200, 201, 204):
                        body = await resp.text()
                        logger.error(
                            "Failed to place {} order for {} shares of {}: HTTP {} {}",
                            ticket.action.value, ticket.quantity, ticket.symbol, resp.status, body,
                        )
                        return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("Trade submission to {} failed: {}", endpoint, exc)
            return False

        logger.info(
            "{} order for {} shares of {} placed at {:.2f}",
            ticket.action.value, ticket.quantity, ticket.symbol, ticket.price,
        )
        return True
