"""
Tests for the trade value update orchestrator.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from contracts.stake import StakeExitData, StakeRecord
from contracts.tracking import ProcessingStats, StakeExitStats, SubscriberResult
from signaltracker.trade_updater import TradeValueUpdater, calculate_new_trade_value
from tests.integration.fakes import FakeStakingContract

T0 = datetime(2024, 1, 1, tzinfo=UTC)


@pytest.fixture
def contract():
    return FakeStakingContract()


@pytest.fixture
def updater(contract, store, clock):
    return TradeValueUpdater(contract, store, clock=clock, call_delay=0, subscriber_delay=0)


class TestCalculateNewTradeValue:
    @pytest.mark.parametrize(
        "pnl,expected",
        [
            ("10.00%", 1100),
            ("-10.00%", 900),
            ("-150%", 0),
            ("0%", 1000),
            ("0.00%", 1000),
            ("garbage", 1000),
            ("0.05%", 1000),
            ("-0.15%", 999),
        ],
    )
    def test_applies_percentage(self, pnl, expected):
        assert calculate_new_trade_value(1000, pnl) == expected

    def test_large_amounts_are_exact(self):
        assert calculate_new_trade_value(2 * 10**18, "12.34%") == 2246800000000000000


class TestUpdateUserTrades:
    @pytest.mark.asyncio
    async def test_updates_only_active_trading_stakes(self, updater, contract, store):
        contract.add_stake("0xabc", 1000)
        contract.add_stake("0xabc", 1000, active=False)
        contract.add_stake("0xabc", 1000, trade_active=False)
        contract.add_stake("0xabc", 500)

        result = await updater.update_user_trades("0xabc", "10.00%")

        assert (result.updated, result.errors) == (2, 0)
        assert contract.update_calls == [("0xabc", 0, 1100), ("0xabc", 3, 550)]
        assert [(u.stake_index, u.new_trade_value) for u in store.trade_value_updates] == [
            (0, 1100),
            (3, 550),
        ]
        assert store.trade_value_updates[0].tx_hash == "0xfake1"
        assert store.trade_value_updates[0].update_type == "periodic"

    @pytest.mark.asyncio
    async def test_failed_call_is_counted(self, updater, contract, store):
        contract.add_stake("0xabc", 1000)
        contract.add_stake("0xabc", 1000)
        contract.failing_updates.add(("0xabc", 0))

        result = await updater.update_user_trades("0xabc", "5%")

        assert (result.updated, result.errors) == (1, 1)
        assert len(store.trade_value_updates) == 1

    @pytest.mark.asyncio
    async def test_audit_write_failure_is_not_an_error(self, updater, contract, store):
        contract.add_stake("0xabc", 1000)
        store.fail_audit_writes = True

        result = await updater.update_user_trades("0xabc", "5%")

        assert (result.updated, result.errors) == (1, 0)

    @pytest.mark.asyncio
    async def test_dry_run_skips_audit_rows(self, contract, store, clock):
        updater = TradeValueUpdater(
            contract, store, clock=clock, call_delay=0, subscriber_delay=0, dry_run=True
        )
        contract.add_stake("0xabc", 1000)

        result = await updater.update_user_trades("0xabc", "5%")

        assert (result.updated, result.errors) == (1, 0)
        assert contract.update_calls == [("0xabc", 0, 1050)]
        assert store.trade_value_updates == []

    @pytest.mark.asyncio
    async def test_missing_details_are_skipped(self, updater, contract):
        contract.get_stake_count = AsyncMock(return_value=2)

        result = await updater.update_user_trades("0xabc", "5%")

        assert (result.updated, result.errors) == (0, 0)
        assert contract.update_calls == []

    @pytest.mark.asyncio
    async def test_unexpected_error_counts_once(self, updater, contract):
        contract.get_stake_count = AsyncMock(side_effect=RuntimeError("rpc down"))

        result = await updater.update_user_trades("0xabc", "5%")

        assert (result.updated, result.errors) == (0, 1)

    @pytest.mark.asyncio
    async def test_sleeps_after_each_call(self, contract, store):
        updater = TradeValueUpdater(contract, store, call_delay=1.0, subscriber_delay=2.0)
        contract.add_stake("0xabc", 1000)
        contract.add_stake("0xabc", 1000)

        with patch("signaltracker.trade_updater.asyncio.sleep", new=AsyncMock()) as sleep:
            await updater.update_user_trades("0xabc", "5%")

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 1.0]


class TestApplySubscriberResults:
    @pytest.mark.asyncio
    async def test_accumulates_stats(self, updater, contract):
        contract.add_stake("0x1", 1000)
        contract.add_stake("0x2", 1000)
        contract.failing_updates.add(("0x2", 0))
        results = {
            "0x1": SubscriberResult(subscriber_address="0x1", cumulative_total="10.00%"),
            "0x2": SubscriberResult(subscriber_address="0x2", cumulative_total="-5.00%"),
        }
        stats = ProcessingStats()

        await updater.apply_subscriber_results(results, stats)

        assert stats.total_blockchain_updates == 1
        assert stats.total_blockchain_errors == 1
        assert contract.update_calls == [("0x1", 0, 1100), ("0x2", 0, 950)]

    @pytest.mark.asyncio
    async def test_delay_between_subscribers(self, contract, store):
        updater = TradeValueUpdater(contract, store, call_delay=1.0, subscriber_delay=2.0)
        results = {
            "0x1": SubscriberResult(subscriber_address="0x1"),
            "0x2": SubscriberResult(subscriber_address="0x2"),
        }

        with patch("signaltracker.trade_updater.asyncio.sleep", new=AsyncMock()) as sleep:
            await updater.apply_subscriber_results(results, ProcessingStats())

        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 2.0]


class TestApplyStakeExits:
    def exit_data(self, owner: str, value: int) -> StakeExitData:
        return StakeExitData(
            owner_address=owner,
            stake_index=0,
            stake=StakeRecord(stake_amount=100, opened_at=T0, exit_timestamp=T0 + timedelta(days=1)),
            total_pnl="-150.00%",
            trading_amount=2,
            final_trade_value=value,
        )

    @pytest.mark.asyncio
    async def test_exits_and_audits(self, updater, contract, store):
        contract.failing_exits.add(("0x2", 0))
        stats = StakeExitStats()

        await updater.apply_stake_exits([self.exit_data("0x1", 0), self.exit_data("0x2", 5)], stats)

        assert contract.exit_calls == [("0x1", 0, 0), ("0x2", 0, 5)]
        assert (stats.stakes_exited, stats.exit_errors) == (1, 1)
        [audit] = store.trade_value_updates
        assert audit.update_type == "exit"
        assert audit.subscriber_address == "0x1"
        assert audit.original_trading_amount == 2
        assert audit.new_trade_value == 0

    @pytest.mark.asyncio
    async def test_raising_contract_is_counted(self, updater, contract):
        contract.exit_trade = AsyncMock(side_effect=RuntimeError("boom"))
        stats = StakeExitStats()

        await updater.apply_stake_exits([self.exit_data("0x1", 1)], stats)

        assert stats.exit_errors == 1
