"""ohlcv-replay: replays historical OHLCV bars as a live, animated feed."""

from .animator import CandleAnimator
from .config import ReplaySettings
from .engine import ReplayEngine, open_replay
from .exceptions import EngineStateError, InvalidBarError, NoDataError, ReplayError
from .ingest import normalize_rows
from .log import configure_logging
from .models import ActiveCandle, Bar, BarSource, FinalizePolicy, Phase
from .scheduler import PlaybackScheduler
from .timers import AsyncioTimers, ManualTimers
from .trades import TradeAction, TradeTicket
from .viewport import ViewportController

__all__ = [
    "ActiveCandle",
    "AsyncioTimers",
    "Bar",
    "BarSource",
    "CandleAnimator",
    "EngineStateError",
    "FinalizePolicy",
    "InvalidBarError",
    "ManualTimers",
    "NoDataError",
    "Phase",
    "PlaybackScheduler",
    "ReplayEngine",
    "ReplayError",
    "ReplaySettings",
    "TradeAction",
    "TradeTicket",
    "ViewportController",
    "configure_logging",
    "normalize_rows",
    "open_replay",
]
__version__ = "0.1.0"
