"""Shared fixtures for the replay tests."""

import datetime
import random

import pytest
from loguru import logger

from ohlcv_replay.models import Bar, BarSource
from ohlcv_replay.timers import ManualTimers


def make_bar(day: int, open_: float, high: float, low: float, close: float, volume: int = 1000) -> Bar:
    return Bar(
        timestamp=datetime.datetime(2024, 1, 1) + datetime.timedelta(days=day),
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def two_bar_source():
    """The two-bar scenario: 10 -> 12/9 -> 11, then 11 -> 13/10 -> 12."""
    return BarSource(
        "AAPL",
        [
            make_bar(0, 10.0, 12.0, 9.0, 11.0),
            make_bar(1, 11.0, 13.0, 10.0, 12.0),
        ],
    )


@pytest.fixture
def five_bar_source():
    return BarSource(
        "AAPL",
        [
            make_bar(0, 100.0, 103.0, 98.5, 101.0),
            make_bar(1, 101.0, 102.5, 99.0, 100.2),
            make_bar(2, 100.2, 100.9, 97.0, 97.4),
            make_bar(3, 97.4, 99.8, 97.4, 99.8),
            make_bar(4, 99.8, 101.0, 99.1, 100.0),
        ],
    )


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during the test."""
    messages = []
    sink_id = logger.add(lambda msg: messages.append(msg.record), level="TRACE")
    yield messages
    logger.remove(sink_id)


@pytest.fixture(name="make_bar")
def make_bar_fixture():
    return make_bar
