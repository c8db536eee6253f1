"""Abstract base class for bar providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ohlcv_replay.models import Bar


class BarProvider(ABC):
    """Base class every provider must implement.

    The registry asks providers in order and replays the first non-empty
    answer. ``None`` or an empty list means "try the next one".
    """

    #: Provider name used in log messages.
    name: str = ""

    @abstractmethod
    def supports(self, symbol: str) -> bool:
        """Return True if this provider can try to fetch *symbol*.

        This should be a cheap check (configuration present, ticker shape)
        with no network access.
        """

    @abstractmethod
    async def fetch(
        self,
        symbol: str,
        interval: str,
        limit: int,
    ) -> list[Bar] | None:
        """Fetch historical bars for *symbol*.

        Args:
            symbol:   Uppercase ticker (e.g. ``AAPL``).
            interval: Bar interval, ``1d`` or ``1w``.
            limit:    Maximum number of bars to return (the most recent
                      *limit* bars).

        Returns:
            Bars oldest first, or ``None`` if the provider has nothing for
            *symbol*.
        """
