"""Tests for the provider chain and the HTTP-backed providers."""

import datetime
import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pandas as pd
import pytest

from ohlcv_replay import registry
from ohlcv_replay.config import ReplaySettings
from ohlcv_replay.models import Bar, BarSource
from ohlcv_replay.providers.base import BarProvider
from ohlcv_replay.providers.postgrest import PostgrestProvider
from ohlcv_replay.providers.tiingo import TiingoProvider
from ohlcv_replay.providers.yfinance import YFinanceProvider


class FakeProvider(BarProvider):
    def __init__(self, name, result=None, error=None, supported=True):
        self.name = name
        self.result = result
        self.error = error
        self.supported = supported
        self.calls = 0

    def supports(self, symbol):
        return self.supported

    async def fetch(self, symbol, interval, limit):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    return ReplaySettings(symbol="AAPL")


class TestChain:
    @pytest.mark.asyncio
    async def test_first_non_empty_result_wins(self, settings, make_bar):
        bars = [make_bar(0, 10, 12, 9, 11), make_bar(1, 11, 13, 10, 12)]
        empty = FakeProvider("empty", result=[])
        skipped = FakeProvider("skipped", result=bars, supported=False)
        winner = FakeProvider("winner", result=bars)
        after = FakeProvider("after", result=bars)

        source = await registry.fetch(settings, [empty, skipped, winner, after])

        assert isinstance(source, BarSource)
        assert list(source) == bars
        assert (empty.calls, skipped.calls, winner.calls, after.calls) == (1, 0, 1, 0)

    @pytest.mark.asyncio
    async def test_provider_errors_fall_through(self, settings, make_bar):
        bars = [make_bar(0, 10, 12, 9, 11)]
        broken = FakeProvider("broken", error=aiohttp.ClientConnectionError("down"))
        unkeyed = FakeProvider("unkeyed", error=RuntimeError("API key is not set"))
        good = FakeProvider("good", result=bars)

        source = await registry.fetch(settings, [broken, unkeyed, good])

        assert len(source) == 1

    @pytest.mark.asyncio
    async def test_invalid_bars_are_dropped(self, settings, make_bar):
        bars = [make_bar(0, 10, 12, 9, 11), make_bar(1, 15, 13, 10, 12)]

        source = await registry.fetch(settings, [FakeProvider("p", result=bars)])

        assert list(source) == bars[:1]

    @pytest.mark.asyncio
    async def test_no_data_returns_none(self, settings, log_messages):
        result = await registry.fetch(settings, [FakeProvider("a"), FakeProvider("b", result=[])])

        assert result is None
        assert any("No stock data available for AAPL" in r["message"] for r in log_messages)

    @pytest.mark.asyncio
    async def test_mixed_naive_and_aware_bars_fall_through(self, settings, make_bar):
        aware = Bar(datetime.datetime(2024, 1, 3, tzinfo=datetime.timezone.utc), 10, 12, 9, 11)
        mixed = FakeProvider("mixed", result=[make_bar(0, 10, 12, 9, 11), aware])
        good = FakeProvider("good", result=[make_bar(0, 10, 12, 9, 11)])

        source = await registry.fetch(settings, [mixed, good])

        assert len(source) == 1
        assert good.calls == 1

    def test_pick_includes_postgrest_only_when_configured(self, settings, monkeypatch):
        assert [p.name for p in registry.pick(settings)] == ["yfinance", "tiingo"]

        configured = ReplaySettings(postgrest_url="https://db.example.com", postgrest_key="k")
        chain = registry.pick(configured)
        assert [p.name for p in chain] == ["postgrest", "yfinance", "tiingo"]
        assert chain[0].table == "AAPL"


def _json_session(status, payload):
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    get_ctx = MagicMock()
    get_ctx.__aenter__ = AsyncMock(return_value=response)
    get_ctx.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.get = MagicMock(return_value=get_ctx)
    session_ctx = MagicMock()
    session_ctx.__aenter__ = AsyncMock(return_value=session)
    session_ctx.__aexit__ = AsyncMock(return_value=False)
    return session_ctx, session


class TestPostgrestProvider:
    ROWS = [
        {"Date": "10/17/2024", "Open": "$232.15", "High": "$233.85", "Low": "$230.52",
         "Close": "$232.15", "Volume": "32,993,810"},
        {"Date": "10/16/2024", "Open": "$231.60", "High": "$232.12", "Low": "$229.84",
         "Close": "$231.78", "Volume": "34,082,240"},
        {"Date": "10/15/2024", "Open": "oops", "High": "$237.49", "Low": "$232.37",
         "Close": "$233.85", "Volume": "64,751,370"},
    ]

    def test_supports_requires_configuration(self):
        assert PostgrestProvider("https://db", "key").supports("aapl")
        assert not PostgrestProvider("", "key").supports("AAPL")
        assert not PostgrestProvider("https://db", "key").supports("BTC-USD")

    @pytest.mark.asyncio
    async def test_fetch_normalizes_rows(self):
        session_ctx, session = _json_session(200, self.ROWS)
        provider = PostgrestProvider("https://db.example.com/", "anon")

        with patch("ohlcv_replay.providers.postgrest.aiohttp.ClientSession", return_value=session_ctx):
            bars = await provider.fetch("aapl", "1d", 100)

        assert [b.timestamp.day for b in bars] == [16, 17]
        assert bars[-1].volume == 32_993_810
        args, kwargs = session.get.call_args
        assert args[0] == "https://db.example.com/rest/v1/AAPL"
        assert kwargs["params"] == {"select": "*"}
        assert kwargs["headers"]["Authorization"] == "Bearer anon"

    @pytest.mark.asyncio
    async def test_http_error_returns_none(self):
        session_ctx, _ = _json_session(401, {"message": "no"})
        provider = PostgrestProvider("https://db.example.com", "anon", table="prices")

        with patch("ohlcv_replay.providers.postgrest.aiohttp.ClientSession", return_value=session_ctx):
            assert await provider.fetch("AAPL", "1d", 100) is None

    @pytest.mark.asyncio
    async def test_non_json_body_is_no_data(self, settings, log_messages):
        session_ctx, session = _json_session(200, None)
        response = session.get.return_value.__aenter__.return_value
        response.json = AsyncMock(
            side_effect=json.JSONDecodeError("Expecting value", "<html>gateway</html>", 0)
        )
        provider = PostgrestProvider("https://db.example.com", "anon")

        with patch("ohlcv_replay.providers.postgrest.aiohttp.ClientSession", return_value=session_ctx):
            assert await registry.fetch(settings, [provider]) is None

        assert any("non-JSON" in r["message"] for r in log_messages)

    @pytest.mark.asyncio
    async def test_mixed_date_formats_load(self, settings):
        rows = [
            {"Date": "2024-01-02T00:00:00Z", "Open": "$10", "High": "$12", "Low": "$9",
             "Close": "$11", "Volume": "1,000"},
            {"Date": "01/01/2024", "Open": "$10", "High": "$12", "Low": "$9",
             "Close": "$11", "Volume": "1,000"},
        ]
        session_ctx, _ = _json_session(200, rows)
        provider = PostgrestProvider("https://db.example.com", "anon")

        with patch("ohlcv_replay.providers.postgrest.aiohttp.ClientSession", return_value=session_ctx):
            source = await registry.fetch(settings, [provider])

        assert [b.timestamp.day for b in source] == [1, 2]

    @pytest.mark.asyncio
    async def test_weekly_interval_not_stored(self):
        assert await PostgrestProvider("https://db", "k").fetch("AAPL", "1w", 10) is None


class TestYFinanceProvider:
    @pytest.mark.asyncio
    async def test_fetch_converts_frame_and_drops_gaps(self):
        index = pd.DatetimeIndex(
            [datetime.datetime(2024, 10, d) for d in (15, 16, 17)], tz="America/New_York"
        )
        df = pd.DataFrame(
            {
                "Open": [233.6, float("nan"), 233.4],
                "High": [237.5, 232.1, 233.9],
                "Low": [232.4, 229.8, 230.5],
                "Close": [233.9, 231.8, 232.2],
                "Volume": [64_751_370, 34_082_240, 32_993_810],
            },
            index=index,
        )

        with patch.object(YFinanceProvider, "_download", return_value=df):
            bars = await YFinanceProvider().fetch("AAPL", "1d", 10)

        assert [b.timestamp.day for b in bars] == [15, 17]
        assert bars[0].volume == 64_751_370

    @pytest.mark.asyncio
    async def test_unsupported_interval(self):
        assert await YFinanceProvider().fetch("AAPL", "1m", 10) is None


class TestTiingoProvider:
    @pytest.mark.asyncio
    async def test_missing_key_raises(self, monkeypatch):
        monkeypatch.delenv("TIINGO_API_KEY", raising=False)
        with pytest.raises(RuntimeError, match="TIINGO_API_KEY"):
            await TiingoProvider().fetch("AAPL", "1d", 10)

    @pytest.mark.asyncio
    async def test_fetch_parses_rows(self, monkeypatch):
        monkeypatch.setenv("TIINGO_API_KEY", "token")
        rows = [
            {"date": "2024-10-16T00:00:00.000Z", "open": 231.6, "high": 232.1, "low": 229.8,
             "close": 231.8, "volume": 34082240},
            {"date": "2024-10-17T00:00:00.000Z", "open": 233.4, "high": 233.9, "low": 230.5,
             "close": 232.2, "volume": 32993810},
        ]

        with patch.object(TiingoProvider, "_download", return_value=rows) as download:
            bars = await TiingoProvider().fetch("aapl", "1d", 10)

        assert [b.close for b in bars] == [231.8, 232.2]
        assert bars[0].timestamp.tzinfo is not None
        assert download.call_args.args[0] == "AAPL"
