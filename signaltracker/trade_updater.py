"""
Trade Value Update Orchestrator

Pushes P&L outcomes to the staking contract: periodic trade value updates for
every active trading stake of a subscriber, and one-shot exits for matured
stakes. Contract calls are made one at a time with a fixed delay between them.
Failed calls are counted and the loop continues; the processed-signal ledger
is never rolled back for them.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal

from contracts.stake import StakeExitData
from contracts.tracking import (
    ProcessingStats,
    StakeExitStats,
    SubscriberResult,
    UserTradeValueUpdate,
    utc_now,
)
from shared.constants import SUBSCRIBER_DELAY_SECONDS, TRADE_UPDATE_DELAY_SECONDS
from signaltracker import metrics
from signaltracker.chain.base import StakingContract
from signaltracker.db.base import TrackingStore
from signaltracker.pnl import parse_percent

logger = logging.getLogger(__name__)


def calculate_new_trade_value(trading_amount: int, pnl: str) -> int:
    """Apply a percentage to a trading amount in base units.

    The change is floored before it is applied; losses never take the value
    below zero. Zero or unparseable P&L returns the amount unchanged.
    """
    pnl_value = parse_percent(pnl)
    if pnl_value is None or pnl_value == 0:
        return trading_amount

    change = Decimal(trading_amount) * abs(Decimal(str(pnl_value))) / 100
    change_amount = int(change.to_integral_value(rounding=ROUND_FLOOR))

    if pnl_value > 0:
        return trading_amount + change_amount
    return max(0, trading_amount - change_amount)


@dataclass
class UpdateResult:
    updated: int = 0
    errors: int = 0


class TradeValueUpdater:
    """Sequential driver of updateTradeValue / exitTrade calls"""

    def __init__(
        self,
        contract: StakingContract,
        store: TrackingStore,
        clock: Callable[[], datetime] = utc_now,
        call_delay: float = TRADE_UPDATE_DELAY_SECONDS,
        subscriber_delay: float = SUBSCRIBER_DELAY_SECONDS,
        dry_run: bool = False,
    ) -> None:
        self.contract = contract
        self.store = store
        self.clock = clock
        self.call_delay = call_delay
        self.subscriber_delay = subscriber_delay
        self.dry_run = dry_run

    async def _record_update(self, update: UserTradeValueUpdate) -> None:
        """Audit write; a failure here does not undo the on-chain change"""
        if self.dry_run:
            logger.debug(
                f"Dry run: not storing {update.update_type} update for "
                f"{update.subscriber_address} stake {update.stake_index}"
            )
            return
        try:
            await self.store.store_trade_value_update(update)
        except Exception as e:
            logger.error(f"Error storing trade value update in database: {e}")

    async def update_user_trades(self, user_address: str, cumulative_pnl: str) -> UpdateResult:
        """Apply a cumulative P&L to every active trading stake of a user.

        Each stake's trading amount (not its current value) is the base, so
        repeated runs with the same cumulative P&L produce the same value.
        """
        result = UpdateResult()

        try:
            stake_count = await self.contract.get_stake_count(user_address)

            for index in range(stake_count):
                details = await self.contract.get_stake_details(user_address, index)
                if details is None or not details.active or not details.trade_active:
                    continue

                new_value = calculate_new_trade_value(details.trading_amount, cumulative_pnl)
                tx = await self.contract.update_trade_value(user_address, index, new_value)

                if tx.success:
                    result.updated += 1
                    metrics.trade_value_updates_total.labels(status="success").inc()
                    logger.info(
                        f"Updated stake {index} for {user_address}: trading amount "
                        f"{details.trading_amount} -> new trade value {new_value} "
                        f"({cumulative_pnl} P&L applied)"
                        + (f" - TX: {tx.tx_hash}" if tx.tx_hash else "")
                    )
                    await self._record_update(
                        UserTradeValueUpdate(
                            subscriber_address=user_address,
                            stake_index=index,
                            original_trading_amount=details.trading_amount,
                            new_trade_value=new_value,
                            pnl_percentage=cumulative_pnl,
                            updated_at=self.clock(),
                            tx_hash=tx.tx_hash,
                            update_type="periodic",
                        )
                    )
                else:
                    result.errors += 1
                    metrics.trade_value_updates_total.labels(status="failed").inc()

                await asyncio.sleep(self.call_delay)
        except Exception as e:
            logger.error(f"Error updating trades for user {user_address}: {e}")
            result.errors += 1

        return result

    async def apply_subscriber_results(
        self, results: Mapping[str, SubscriberResult], stats: ProcessingStats
    ) -> None:
        """Push each subscriber's cumulative P&L to their stakes"""
        for address, subscriber_result in results.items():
            try:
                logger.info(
                    f"Updating trades for {address} with cumulative P&L "
                    f"{subscriber_result.cumulative_total}"
                )
                outcome = await self.update_user_trades(
                    address, subscriber_result.cumulative_total
                )
                stats.total_blockchain_updates += outcome.updated
                stats.total_blockchain_errors += outcome.errors
                logger.info(
                    f"Blockchain updates for {address}: {outcome.updated} updated, "
                    f"{outcome.errors} errors"
                )
            except Exception as e:
                logger.error(f"Error updating blockchain trades for {address}: {e}")
                stats.total_blockchain_errors += 1

            await asyncio.sleep(self.subscriber_delay)

    async def apply_stake_exits(
        self, exits: Iterable[StakeExitData], stats: StakeExitStats
    ) -> None:
        """Send exitTrade for each computed exit"""
        for exit_data in exits:
            try:
                logger.info(
                    f"Exiting stake {exit_data.owner_address}[{exit_data.stake_index}] "
                    f"with final value {exit_data.final_trade_value}"
                )
                success = await self.contract.exit_trade(
                    exit_data.owner_address,
                    exit_data.stake_index,
                    exit_data.final_trade_value,
                )
                if success:
                    stats.stakes_exited += 1
                    metrics.stake_exits_total.labels(status="success").inc()
                    await self._record_update(
                        UserTradeValueUpdate(
                            subscriber_address=exit_data.owner_address,
                            stake_index=exit_data.stake_index,
                            original_trading_amount=exit_data.trading_amount,
                            new_trade_value=exit_data.final_trade_value,
                            pnl_percentage=exit_data.total_pnl,
                            updated_at=self.clock(),
                            update_type="exit",
                        )
                    )
                else:
                    stats.exit_errors += 1
                    metrics.stake_exits_total.labels(status="failed").inc()
                    logger.error(
                        f"Failed to exit stake "
                        f"{exit_data.owner_address}[{exit_data.stake_index}]"
                    )
            except Exception as e:
                stats.exit_errors += 1
                metrics.stake_exits_total.labels(status="failed").inc()
                logger.error(
                    f"Error exiting stake {exit_data.owner_address}"
                    f"[{exit_data.stake_index}]: {e}"
                )

            await asyncio.sleep(self.subscriber_delay)
