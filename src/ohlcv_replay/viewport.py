"""Zoom/pan window over the displayed series, in index space."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from loguru import logger

T = TypeVar("T")

ZOOM_IN = 0.9
ZOOM_OUT = 1.1
PIXELS_PER_BAR = 10


@dataclass(slots=True, frozen=True)
class ViewportWindow:
    x_start: float
    x_end: float


def _clamp(value: float, upper: float) -> float:
    return min(max(value, 0.0), upper)


class ViewportController:
    """Keeps ``[x_start, x_end]`` inside ``[0, len - 1]`` of the series.

    *length* is called on every gesture, so the window always clamps
    against the series as it is at that moment. Until the first gesture
    (and again after :meth:`reset`) the window follows the whole series.

    Zoom scales both ends from index 0, not from the window center.
    """

    def __init__(self, length: Callable[[], int]) -> None:
        self._length = length
        self._window: ViewportWindow | None = None

    @property
    def window(self) -> ViewportWindow:
        if self._window is None:
            return ViewportWindow(0.0, self._upper())
        return self._window

    @property
    def following(self) -> bool:
        return self._window is None

    def _upper(self) -> float:
        return float(max(self._length() - 1, 0))

    def reset(self) -> ViewportWindow:
        """Go back to showing the whole series."""
        self._window = None
        return self.window

    def zoom(self, dy: float) -> ViewportWindow:
        """Apply a wheel delta: negative zooms in, anything else zooms out."""
        factor = ZOOM_IN if dy < 0 else ZOOM_OUT
        current, upper = self.window, self._upper()
        self._window = ViewportWindow(
            _clamp(current.x_start * factor, upper),
            _clamp(current.x_end * factor, upper),
        )
        logger.trace("Zoom dy={} -> {}", dy, self._window)
        return self._window

    def pan(self, ox: float) -> ViewportWindow:
        """Apply a drag offset in pixels; dragging right moves the window left."""
        # Half-up rounding, so -0.5 -> 0 and 0.5 -> 1.
        offset = math.floor(-ox / PIXELS_PER_BAR + 0.5)
        current, upper = self.window, self._upper()
        self._window = ViewportWindow(
            _clamp(current.x_start + offset, upper),
            _clamp(current.x_end + offset, upper),
        )
        logger.trace("Pan ox={} -> {}", ox, self._window)
        return self._window

    def visible(self, bars: Sequence[T]) -> list[T]:
        """Items whose index lies inside the window."""
        window = self.window
        first = math.ceil(window.x_start)
        last = math.floor(window.x_end)
        return list(bars[first:last + 1])
