"""
Stake Exit Valuator

For every stake whose exit time has passed, the valid signals of all known
influencers generated inside the stake window are summed and applied to the
stake's trading allocation to produce the final value passed to exitTrade.
Exits are one-shot events, so nothing here touches the ledger.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal

from contracts.signal import BacktestSignal
from contracts.stake import ReadyStake, StakeExitData, UserStakes
from shared.constants import TOKEN_DECIMALS, TRADING_ALLOCATION_PCT
from signaltracker.pnl import filter_valid_signals, parse_percent, sum_pnl
from signaltracker.windows import signals_in_stake_window

logger = logging.getLogger(__name__)


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def _trading_allocation(stake_amount: float, decimals: int) -> Decimal:
    base_units = Decimal(str(stake_amount)) * (Decimal(10) ** decimals)
    return base_units * TRADING_ALLOCATION_PCT / 100


def calculate_trading_amount(stake_amount: float, decimals: int = TOKEN_DECIMALS) -> int:
    """Trading allocation of a stake in base units (2% of the staked amount)"""
    return _floor(_trading_allocation(stake_amount, decimals))


def calculate_final_trade_value(
    stake_amount: float, total_pnl: str, decimals: int = TOKEN_DECIMALS
) -> int:
    """Apply a cumulative P&L percentage to a stake's trading allocation.

    Args:
        stake_amount: Staked amount in major units
        total_pnl: Percentage string such as "12.50%"
        decimals: Token decimals used to convert to base units

    Returns:
        Final trade value in base units, never negative. An unparseable P&L
        leaves the trading allocation unchanged.
    """
    trading = _trading_allocation(stake_amount, decimals)
    pnl = parse_percent(total_pnl)
    if pnl is None:
        return _floor(trading)

    final_value = trading + trading * Decimal(str(pnl)) / 100
    return max(0, _floor(final_value))


def select_ready_stakes(user_stakes: Iterable[UserStakes], now: datetime) -> list[ReadyStake]:
    """Stakes whose exit timestamp is at or before now, with their contract index"""
    ready: list[ReadyStake] = []
    for user in user_stakes:
        for index, stake in enumerate(user.stakes):
            if stake.is_ready_to_exit(now):
                ready.append(
                    ReadyStake(owner_address=user.wallet_address, index=index, stake=stake)
                )
    logger.info(f"Found {len(ready)} stakes ready to exit")
    return ready


class StakeExitValuator:
    """Computes exit payloads for ready stakes"""

    def __init__(self, decimals: int = TOKEN_DECIMALS) -> None:
        self.decimals = decimals

    def collect_stake_signals(
        self,
        ready: ReadyStake,
        signals_map: Mapping[str, list[BacktestSignal]],
        influencer_names: set[str],
    ) -> list[BacktestSignal]:
        relevant: list[BacktestSignal] = []
        for name, signals in signals_map.items():
            if name in influencer_names:
                relevant.extend(signals_in_stake_window(signals, ready.stake))
        return filter_valid_signals(relevant)

    def process_stake_exits(
        self,
        ready_stakes: Iterable[ReadyStake],
        signals_map: Mapping[str, list[BacktestSignal]],
        influencer_names: Iterable[str],
    ) -> list[StakeExitData]:
        names = set(influencer_names)
        results: list[StakeExitData] = []

        for ready in ready_stakes:
            stake = ready.stake
            logger.info(
                f"Processing stake for {ready.owner_address}[{ready.index}]: "
                f"{stake.opened_at.isoformat()} to {stake.exit_timestamp.isoformat()}"
            )

            signals = self.collect_stake_signals(ready, signals_map, names)
            total_pnl = sum_pnl(signals)
            exit_data = StakeExitData(
                owner_address=ready.owner_address,
                stake_index=ready.index,
                stake=stake,
                signals=signals,
                total_pnl=total_pnl,
                trading_amount=calculate_trading_amount(stake.stake_amount, self.decimals),
                final_trade_value=calculate_final_trade_value(
                    stake.stake_amount, total_pnl, self.decimals
                ),
            )
            results.append(exit_data)

            logger.info(
                f"Stake exit data for {ready.owner_address}[{ready.index}]: "
                f"{len(signals)} signals, total P&L: {total_pnl}, "
                f"final trade value: {exit_data.final_trade_value}"
            )

        return results


def generate_stake_exit_summary(results: list[StakeExitData]) -> str:
    total_stakes = len(results)
    total_signals = sum(len(r.signals) for r in results)
    totals = [parse_percent(r.total_pnl) or 0.0 for r in results]
    profitable = sum(1 for t in totals if t > 0)
    unprofitable = sum(1 for t in totals if t < 0)

    return "\n".join(
        [
            "Stake Exit Processing Summary:",
            f"- Total stakes ready to exit: {total_stakes}",
            f"- Total signals processed: {total_signals}",
            f"- Stakes with positive P&L: {profitable}",
            f"- Stakes with negative P&L: {unprofitable}",
            f"- Stakes with neutral P&L: {total_stakes - profitable - unprofitable}",
        ]
    )
