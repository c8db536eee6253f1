"""Exceptions raised by the replay engine.

Everything the package raises on purpose derives from :class:`ReplayError`,
so callers can catch a single type around engine setup.
"""


class ReplayError(Exception):
    """Base exception for all replay errors."""


class InvalidBarError(ReplayError, ValueError):
    """Raised when a bar fails a data-quality check (NaN price, low > high, ...)."""


class NoDataError(ReplayError):
    """Raised when a symbol has no bars to replay."""


class EngineStateError(ReplayError):
    """Raised when an engine is started twice or used after close."""
