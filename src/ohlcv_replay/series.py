"""The displayed series: finalized bars, in replay order."""

from __future__ import annotations

from ohlcv_replay.exceptions import InvalidBarError
from ohlcv_replay.models import ActiveCandle, Bar


class DisplayedSeries:
    """Append-only list of finalized bars.

    Only the playback scheduler appends. Everyone else reads copies via
    :meth:`snapshot` or :meth:`with_active`.
    """

    def __init__(self) -> None:
        self._bars: list[Bar] = []

    def __len__(self) -> int:
        return len(self._bars)

    @property
    def last(self) -> Bar | None:
        return self._bars[-1] if self._bars else None

    def append(self, bar: Bar) -> None:
        last = self.last
        if last is not None and bar.timestamp < last.timestamp:
            raise InvalidBarError(
                f"cannot append {bar.timestamp} after {last.timestamp}"
            )
        self._bars.append(bar)

    def snapshot(self) -> tuple[Bar, ...]:
        return tuple(self._bars)

    def with_active(self, candle: ActiveCandle | None) -> list[Bar]:
        """Finalized bars followed by the in-progress bar, if any."""
        bars = list(self._bars)
        if candle is not None:
            bars.append(candle.as_bar())
        return bars
