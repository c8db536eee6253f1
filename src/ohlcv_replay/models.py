"""Data models for replayed OHLCV bars and the in-progress candle."""

from __future__ import annotations

import datetime
import math
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
from enum import Enum

from ohlcv_replay.exceptions import InvalidBarError


@dataclass(slots=True, frozen=True)
class Bar:
    """A single OHLCV bar.

    Attributes:
        timestamp: Start of the bar period.
        open:      Opening price.
        high:      Highest price during the bar.
        low:       Lowest price during the bar.
        close:     Closing price.
        volume:    Traded volume in shares.
    """

    timestamp: datetime.datetime
    open: float
    high: float
    low: float
    close: float
    volume: int = 0

    def __post_init__(self) -> None:
        if self.high < self.low:
            raise InvalidBarError(f"high ({self.high}) must be >= low ({self.low})")

    def problems(self) -> list[str]:
        """Return every data-quality issue with this bar (empty when valid)."""
        issues = [
            f"{name} is not a finite number ({value!r})"
            for name, value in (
                ("open", self.open),
                ("high", self.high),
                ("low", self.low),
                ("close", self.close),
            )
            if not isinstance(value, (int, float)) or not math.isfinite(value)
        ]
        if issues:
            return issues

        if not self.low <= self.open <= self.high:
            issues.append(f"open ({self.open}) outside [{self.low}, {self.high}]")
        if not self.low <= self.close <= self.high:
            issues.append(f"close ({self.close}) outside [{self.low}, {self.high}]")
        if self.volume < 0:
            issues.append(f"volume ({self.volume}) is negative")
        return issues


def ensure_valid(bar: Bar) -> Bar:
    """Return *bar* unchanged, or raise :class:`InvalidBarError` listing its problems."""
    issues = bar.problems()
    if issues:
        raise InvalidBarError(f"invalid bar at {bar.timestamp}: " + "; ".join(issues))
    return bar


class BarSource(Sequence[Bar]):
    """Immutable, oldest-first sequence of validated bars for one symbol."""

    __slots__ = ("symbol", "_bars")

    def __init__(self, symbol: str, bars: Iterable[Bar]) -> None:
        self.symbol = symbol.upper()
        self._bars: tuple[Bar, ...] = ()
        items = tuple(ensure_valid(bar) for bar in bars)
        for prev, cur in zip(items, items[1:]):
            if cur.timestamp < prev.timestamp:
                raise InvalidBarError(
                    f"bars out of order: {cur.timestamp} follows {prev.timestamp}"
                )
        self._bars = items

    def __len__(self) -> int:
        return len(self._bars)

    def __getitem__(self, index):  # type: ignore[override]
        return self._bars[index]

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    def __repr__(self) -> str:
        return f"BarSource({self.symbol!r}, {len(self._bars)} bars)"


class Phase(str, Enum):
    """Animator state. Transitions only move forward through this list."""

    SEEK_HIGH = "seek_high"
    SEEK_LOW = "seek_low"
    CONVERGE = "converge"
    DONE = "done"

    @property
    def rank(self) -> int:
        return _PHASE_ORDER.index(self)


_PHASE_ORDER = (Phase.SEEK_HIGH, Phase.SEEK_LOW, Phase.CONVERGE, Phase.DONE)


@dataclass(slots=True, frozen=True)
class ActiveCandle:
    """Snapshot of the bar currently being animated.

    ``high``/``low`` are running extrema of the synthetic closes shown so
    far, not the source bar's values. A new snapshot replaces the old one
    on every tick, so readers never see a half-applied update.
    """

    base: Bar
    close: float
    high: float
    low: float
    phase: Phase = Phase.SEEK_HIGH

    @classmethod
    def opening(cls, base: Bar) -> ActiveCandle:
        return cls(base=base, close=base.open, high=base.open, low=base.open)

    def advance(self, price: float, phase: Phase) -> ActiveCandle:
        return replace(
            self,
            close=price,
            high=max(self.high, price),
            low=min(self.low, price),
            phase=phase,
        )

    def as_bar(self) -> Bar:
        return Bar(
            timestamp=self.base.timestamp,
            open=self.base.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.base.volume,
        )


class FinalizePolicy(str, Enum):
    """Which version of a bar the displayed series keeps once it is finalized."""

    SOURCE = "source"
    ANIMATED = "animated"


@dataclass(slots=True, frozen=True)
class Finalization:
    """Both candidate values for a bar leaving the active slot."""

    source: Bar
    animated: Bar

    def pick(self, policy: FinalizePolicy) -> Bar:
        return self.animated if policy is FinalizePolicy.ANIMATED else self.source
