"""Normalization of raw price rows into bars.

The hosted table stores one row per trading day, newest first, with
string-typed fields such as::

    {"Date": "10/17/2024", "Open": "$1,234.56", "High": "...", "Low": "...",
     "Close": "...", "Volume": "48,116,400"}

Prices lose their ``$`` and ``,`` before parsing, volume loses its ``,``.
A row that fails any check is logged and left out rather than passed on
as NaN.
"""

from __future__ import annotations

import datetime
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from ohlcv_replay.exceptions import InvalidBarError
from ohlcv_replay.models import Bar, BarSource

_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%m/%d/%y")


def parse_price(value: Any) -> float:
    """Parse ``"$1,234.56"`` style prices. Raises ValueError on anything else."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        text = str(value).replace("$", "").replace(",", "").strip()
        number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"price is not finite: {value!r}")
    return number


def parse_volume(value: Any) -> int:
    """Parse ``"1,234"`` style volumes as a base-10 integer."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return int(str(value).replace(",", "").strip(), 10)


def _naive_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)


def parse_date(value: Any) -> datetime.datetime:
    """Parse ISO-8601 or ``MM/DD/YYYY`` dates.

    Offsets are folded into naive UTC so rows mixing both styles still compare.
    """
    if isinstance(value, datetime.datetime):
        return _naive_utc(value)
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    text = str(value).strip()
    try:
        return _naive_utc(datetime.datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"unrecognised date: {value!r}")


def _field(row: Mapping[str, Any], name: str) -> Any:
    """Look up *name* case-insensitively (``Open``, ``open``, ``OPEN``)."""
    if name in row:
        return row[name]
    lowered = name.lower()
    for key, value in row.items():
        if str(key).lower() == lowered:
            return value
    raise KeyError(name)


def row_to_bar(row: Mapping[str, Any]) -> Bar:
    """Convert one raw row to a validated :class:`Bar`.

    Raises:
        KeyError:        a column is missing.
        ValueError:      a field does not parse (includes InvalidBarError).
    """
    bar = Bar(
        timestamp=parse_date(_field(row, "Date")),
        open=parse_price(_field(row, "Open")),
        high=parse_price(_field(row, "High")),
        low=parse_price(_field(row, "Low")),
        close=parse_price(_field(row, "Close")),
        volume=parse_volume(_field(row, "Volume")),
    )
    issues = bar.problems()
    if issues:
        raise InvalidBarError("; ".join(issues))
    return bar


@dataclass(slots=True, frozen=True)
class RejectedRow:
    index: int
    row: Mapping[str, Any]
    reason: str


@dataclass(slots=True)
class NormalizedRows:
    """Bars in playback order plus the rows that were left out."""

    bars: list[Bar] = field(default_factory=list)
    rejected: list[RejectedRow] = field(default_factory=list)

    def to_source(self, symbol: str) -> BarSource:
        return BarSource(symbol, self.bars)


def normalize_rows(rows: Sequence[Mapping[str, Any]], symbol: str = "") -> NormalizedRows:
    """Normalize newest-first *rows* into oldest-first bars.

    Bad rows are logged at WARNING and skipped; the rest still load.
    """
    result = NormalizedRows()
    for index, row in enumerate(rows):
        try:
            result.bars.append(row_to_bar(row))
        except (KeyError, ValueError, TypeError) as exc:
            reason = f"missing column {exc}" if isinstance(exc, KeyError) else str(exc)
            logger.warning("Skipping {} row {}: {}", symbol or "bar", index, reason)
            result.rejected.append(RejectedRow(index=index, row=row, reason=reason))

    result.bars.reverse()
    if result.rejected:
        logger.warning(
            "{}: {} of {} rows rejected",
            symbol or "rows", len(result.rejected), len(rows),
        )
    return result
