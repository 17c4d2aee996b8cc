"""
Tests for stake exit valuation.
"""

from datetime import UTC, datetime, timedelta

import pytest

from contracts.stake import ReadyStake, StakeRecord, UserStakes
from signaltracker.stake_exit import (
    StakeExitValuator,
    calculate_final_trade_value,
    calculate_trading_amount,
    generate_stake_exit_summary,
    select_ready_stakes,
)
from tests.conftest import make_signal

OPENED = datetime(2024, 1, 1, tzinfo=UTC)
EXIT = OPENED + timedelta(days=1)


class TestCalculateFinalTradeValue:
    def test_trading_amount_is_two_percent(self):
        assert calculate_trading_amount(100, decimals=0) == 2
        assert calculate_trading_amount(100) == 2 * 10**18
        assert calculate_trading_amount(0.1) == 2 * 10**15

    def test_positive_pnl(self):
        assert calculate_final_trade_value(100, "10.00%") == 22 * 10**17

    def test_negative_pnl(self):
        assert calculate_final_trade_value(100, "-25%") == 15 * 10**17

    def test_loss_beyond_total_is_floored_at_zero(self):
        assert calculate_final_trade_value(100, "-150%", decimals=0) == 0
        assert calculate_final_trade_value(100, "-100%") == 0

    def test_unparseable_pnl_returns_trading_amount(self):
        assert calculate_final_trade_value(100, "n/a", decimals=0) == 2
        assert calculate_final_trade_value(100, "0%") == 2 * 10**18

    def test_result_is_floored(self):
        # 2 * (1 + 0.333) = 2.666
        assert calculate_final_trade_value(100, "33.3%", decimals=0) == 2


class TestSelectReadyStakes:
    def test_keeps_contract_indexes(self):
        user = UserStakes(
            wallet_address="0xabc",
            stakes=[
                StakeRecord(stake_amount=1, opened_at=OPENED, exit_timestamp=EXIT + timedelta(days=9)),
                StakeRecord(stake_amount=2, opened_at=OPENED, exit_timestamp=EXIT),
            ],
        )

        ready = select_ready_stakes([user], now=EXIT)

        assert [(r.owner_address, r.index) for r in ready] == [("0xabc", 1)]


class TestProcessStakeExits:
    def ready_stake(self) -> ReadyStake:
        return ReadyStake(
            owner_address="0xabc",
            index=0,
            stake=StakeRecord(stake_amount=100, opened_at=OPENED, exit_timestamp=EXIT),
        )

    def test_uses_inclusive_stake_window_across_known_influencers(self):
        signals_map = {
            "alice": [
                make_signal("at-open", OPENED, "10%"),
                make_signal("at-exit", EXIT, "5%"),
                make_signal("after", EXIT + timedelta(seconds=1), "50%"),
            ],
            "carol": [make_signal("c1", OPENED + timedelta(hours=1), "-5%", account="carol")],
            "unknown": [make_signal("u1", OPENED + timedelta(hours=1), "99%", account="unknown")],
        }

        [exit_data] = StakeExitValuator().process_stake_exits(
            [self.ready_stake()], signals_map, ["alice", "carol"]
        )

        assert sorted(s.id for s in exit_data.signals) == ["at-exit", "at-open", "c1"]
        assert exit_data.total_pnl == "10.00%"
        assert exit_data.trading_amount == 2 * 10**18
        assert exit_data.final_trade_value == 22 * 10**17

    def test_heavy_loss_exits_at_zero(self):
        signals_map = {"alice": [make_signal("s1", OPENED + timedelta(hours=1), "-150%")]}

        [exit_data] = StakeExitValuator(decimals=0).process_stake_exits(
            [self.ready_stake()], signals_map, ["alice"]
        )

        assert exit_data.total_pnl == "-150.00%"
        assert exit_data.final_trade_value == 0

    def test_no_signals(self):
        [exit_data] = StakeExitValuator(decimals=0).process_stake_exits(
            [self.ready_stake()], {}, ["alice"]
        )

        assert exit_data.total_pnl == "0%"
        assert exit_data.final_trade_value == 2

    def test_invalid_signals_are_ignored(self):
        signals_map = {
            "alice": [
                make_signal("bad", OPENED + timedelta(hours=1), "abc"),
                make_signal("nd", OPENED + timedelta(hours=1), "90%", backtest_done=False),
            ]
        }

        [exit_data] = StakeExitValuator(decimals=0).process_stake_exits(
            [self.ready_stake()], signals_map, ["alice"]
        )

        assert exit_data.signals == []
        assert exit_data.final_trade_value == 2


def test_generate_stake_exit_summary():
    valuator = StakeExitValuator(decimals=0)
    stake = StakeRecord(stake_amount=100, opened_at=OPENED, exit_timestamp=EXIT)
    ready = [
        ReadyStake(owner_address="0x1", index=0, stake=stake),
        ReadyStake(owner_address="0x2", index=0, stake=stake),
    ]
    results = valuator.process_stake_exits(
        ready, {"alice": [make_signal("s1", OPENED, "4%")]}, ["alice"]
    )

    summary = generate_stake_exit_summary(results)

    assert "Total stakes ready to exit: 2" in summary
    assert "Total signals processed: 2" in summary
    assert "Stakes with positive P&L: 2" in summary


@pytest.mark.parametrize("pnl,expected", [("1%", 2), ("50%", 3), ("-49%", 1), ("-50%", 1)])
def test_small_amounts_floor(pnl, expected):
    assert calculate_final_trade_value(100, pnl, decimals=0) == expected
