"""
Tests for percentage parsing and aggregation.
"""

from datetime import UTC, datetime

import pytest

from signaltracker.pnl import (
    add_percent,
    filter_valid_signals,
    format_percent,
    parse_percent,
    sum_pnl,
)
from tests.conftest import make_signal

T0 = datetime(2024, 1, 2, tzinfo=UTC)


class TestParsePercent:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("12.34%", 12.34),
            ("-3.5%", -3.5),
            (" 7 % ", 7.0),
            ("0%", 0.0),
            ("2.5", 2.5),
            (4, 4.0),
            (-1.25, -1.25),
        ],
    )
    def test_valid_values(self, raw, expected):
        assert parse_percent(raw) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "raw", [None, "", "%", "abc%", "N/A", "nan%", "inf", True, "1%%"]
    )
    def test_invalid_values_return_none(self, raw):
        assert parse_percent(raw) is None


class TestFormatPercent:
    def test_two_decimals(self):
        assert format_percent(10) == "10.00%"
        assert format_percent(-2.5) == "-2.50%"
        assert format_percent(1.005) in ("1.00%", "1.01%")

    def test_negative_zero_is_normalized(self):
        assert format_percent(-0.0) == "0.00%"
        assert format_percent(-0.001) == "0.00%"

    def test_round_trip_is_stable(self):
        for value in (12.3456, -7.891, 0.0, 100.0):
            assert parse_percent(format_percent(value)) == round(value, 2)


class TestSumPnl:
    def test_empty_input(self):
        assert sum_pnl([]) == "0%"

    def test_all_invalid_input(self):
        assert sum_pnl(["abc", "", None]) == "0%"

    def test_sums_valid_values_and_skips_invalid(self, caplog):
        assert sum_pnl(["5%", "bad", "-2.5%"]) == "2.50%"
        assert "Invalid P&L value" in caplog.text

    def test_sums_signals(self):
        signals = [
            make_signal("s1", T0, "5%"),
            make_signal("s2", T0, "5%"),
        ]
        assert sum_pnl(signals) == "10.00%"

    def test_zero_total_of_valid_values(self):
        assert sum_pnl(["5%", "-5%"]) == "0.00%"


class TestAddPercent:
    def test_adds_onto_existing_total(self):
        assert add_percent(5.0, "-2.50%") == "2.50%"

    def test_zero_sentinel_is_neutral(self):
        assert add_percent(3.0, "0%") == "3.00%"


class TestFilterValidSignals:
    def test_requires_backtest_done_and_parseable_pnl(self):
        valid = make_signal("ok", T0, "1%")
        not_done = make_signal("nd", T0, "1%", backtest_done=False)
        bad_pnl = make_signal("bad", T0, "n/a")
        missing = make_signal("missing", T0, None)

        result = filter_valid_signals([valid, not_done, bad_pnl, missing])

        assert [s.id for s in result] == ["ok"]
