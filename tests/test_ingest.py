"""Tests for raw row normalization."""

import datetime

import pytest

from ohlcv_replay.ingest import normalize_rows, parse_date, parse_price, parse_volume, row_to_bar


def row(date, open_="$100.50", high="$101.00", low="$99.00", close="$100.00", volume="1,234"):
    return {"Date": date, "Open": open_, "High": high, "Low": low, "Close": close, "Volume": volume}


class TestParsers:
    @pytest.mark.parametrize(
        "raw, expected",
        [("$100.50", 100.50), ("$1,234.56", 1234.56), ("42", 42.0), (" 7.5 ", 7.5), (3, 3.0)],
    )
    def test_parse_price(self, raw, expected):
        assert parse_price(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["bad", "", "$", "nan", "inf", None])
    def test_parse_price_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_price(raw)

    def test_parse_volume(self):
        assert parse_volume("1,234") == 1234
        assert parse_volume("48,116,400") == 48_116_400
        assert parse_volume(17) == 17

    @pytest.mark.parametrize("raw", ["12.5", "lots", ""])
    def test_parse_volume_rejects(self, raw):
        with pytest.raises(ValueError):
            parse_volume(raw)

    @pytest.mark.parametrize(
        "raw", ["2024-10-17", "10/17/2024", "2024-10-17T00:00:00", datetime.date(2024, 10, 17)]
    )
    def test_parse_date(self, raw):
        assert parse_date(raw).date() == datetime.date(2024, 10, 17)

    def test_parse_date_rejects(self):
        with pytest.raises(ValueError):
            parse_date("yesterday")


class TestRowToBar:
    def test_round_trip_example(self):
        bar = row_to_bar(row("2024-10-17"))

        assert bar.open == pytest.approx(100.50)
        assert bar.volume == 1234

    def test_lowercase_columns(self):
        raw = {k.lower(): v for k, v in row("2024-10-17").items()}
        assert row_to_bar(raw).close == pytest.approx(100.0)

    def test_missing_column(self):
        raw = row("2024-10-17")
        del raw["Close"]
        with pytest.raises(KeyError):
            row_to_bar(raw)

    def test_out_of_range_close_is_invalid(self):
        with pytest.raises(ValueError):
            row_to_bar(row("2024-10-17", close="$150.00"))


class TestNormalizeRows:
    def test_reverses_newest_first_rows(self):
        rows = [row("10/17/2024"), row("10/16/2024"), row("10/15/2024")]

        result = normalize_rows(rows, "AAPL")

        assert [b.timestamp.day for b in result.bars] == [15, 16, 17]
        assert result.rejected == []

    def test_bad_row_is_reported_and_excluded(self, log_messages):
        rows = [row("10/17/2024"), row("10/16/2024", open_="bad"), row("10/15/2024")]

        result = normalize_rows(rows, "AAPL")

        assert [b.timestamp.day for b in result.bars] == [15, 17]
        assert len(result.rejected) == 1
        assert result.rejected[0].index == 1
        assert result.rejected[0].row is rows[1]
        warnings = [r for r in log_messages if r["level"].name == "WARNING"]
        assert any("row 1" in r["message"] for r in warnings)

    def test_invariant_violation_is_rejected(self):
        rows = [row("10/17/2024", high="$90.00")]

        result = normalize_rows(rows)

        assert result.bars == []
        assert "high" in result.rejected[0].reason

    def test_mixed_date_styles_share_one_clock(self):
        rows = [row("2024-10-17T20:00:00-04:00"), row("10/17/2024"), row("2024-10-16T00:00:00Z")]

        result = normalize_rows(rows, "AAPL")

        assert all(b.timestamp.tzinfo is None for b in result.bars)
        assert result.bars[-1].timestamp == datetime.datetime(2024, 10, 18)
        assert len(result.to_source("AAPL")) == 3

    def test_to_source(self):
        source = normalize_rows([row("10/17/2024"), row("10/16/2024")]).to_source("aapl")

        assert source.symbol == "AAPL"
        assert len(source) == 2
