"""Replay configuration loaded from the environment via pydantic-settings.

Every field can be set with a ``REPLAY_`` prefixed variable or in ``.env``::

    REPLAY_SYMBOL=MSFT
    REPLAY_CADENCE_SECONDS=30
    REPLAY_CONVERGE_AND_STOP=true
    REPLAY_FINALIZE_POLICY=animated
"""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ohlcv_replay.models import FinalizePolicy


class ReplaySettings(BaseSettings):
    """Replay engine settings."""

    symbol: str = "AAPL"
    interval: str = "1d"
    history_limit: int = Field(default=250, gt=0)

    # Timing
    cadence_seconds: float = Field(default=60.0, gt=0)
    tick_seconds: float = Field(default=1.0, gt=0)

    # Candle animation
    converge_and_stop: bool = False
    converge_tolerance: float = Field(default=0.1, ge=0)
    snap_epsilon: float = Field(default=0.01, ge=0)
    finalize_policy: FinalizePolicy = FinalizePolicy.SOURCE
    warmup_bars: int = Field(default=0, ge=0)

    # Hosted table (PostgREST) the dashboard reads bars from and writes trades to
    postgrest_url: str = ""
    postgrest_key: str = ""
    bars_table: str = ""
    trades_table: str = "transactions"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="REPLAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("symbol must not be empty")
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @model_validator(mode="after")
    def _tick_within_cadence(self) -> ReplaySettings:
        if self.tick_seconds > self.cadence_seconds:
            raise ValueError(
                f"tick_seconds ({self.tick_seconds}) must not exceed "
                f"cadence_seconds ({self.cadence_seconds})"
            )
        return self

    @property
    def table(self) -> str:
        """Table holding the symbol's bars; defaults to the symbol itself."""
        return self.bars_table or self.symbol
