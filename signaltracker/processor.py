"""
Run driver for the World Signal Tracker.

One invocation performs a single pass of one or both flows:

* signals: aggregate new signal P&L per subscriber into the ledger, then push
  each subscriber's cumulative P&L to their active stakes;
* exits: value every stake whose exit time has passed and call exitTrade.

Health checks and the run lock are taken before anything is written; failing
either raises a FatalRunError and the ledger is left untouched.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime

from opentelemetry import trace

from contracts.tracking import ProcessingStats, StakeExitStats, utc_now
from shared.constants import (
    RUN_LOCK_NAME,
    SUBSCRIBER_DELAY_SECONDS,
    TOKEN_DECIMALS,
    TRADE_UPDATE_DELAY_SECONDS,
    RunMode,
)
from shared.distributed_lock import DistributedLockManager, RunLockError
from signaltracker import metrics
from signaltracker.chain.base import StakingContract
from signaltracker.db.base import TrackingStore
from signaltracker.errors import (
    ContractUnavailableError,
    RunLockNotAcquiredError,
    StoreUnavailableError,
)
from signaltracker.ledger import ProcessedSignalLedger
from signaltracker.signal_aggregator import SignalAggregator, generate_processing_summary
from signaltracker.signal_loader import SignalLoader
from signaltracker.stake_exit import (
    StakeExitValuator,
    generate_stake_exit_summary,
    select_ready_stakes,
)
from signaltracker.trade_updater import TradeValueUpdater

logger = logging.getLogger(__name__)

tracer = trace.get_tracer(__name__)


class SignalProcessingJob:
    """Wires the pipeline components around an injected store and contract"""

    def __init__(
        self,
        store: TrackingStore,
        contract: StakingContract,
        lock_manager: DistributedLockManager | None = None,
        lock_name: str = RUN_LOCK_NAME,
        clock: Callable[[], datetime] = utc_now,
        token_decimals: int = TOKEN_DECIMALS,
        call_delay: float = TRADE_UPDATE_DELAY_SECONDS,
        subscriber_delay: float = SUBSCRIBER_DELAY_SECONDS,
        debug_database_state: bool = False,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.contract = contract
        self.lock_manager = lock_manager
        self.lock_name = lock_name
        self.clock = clock
        self.debug_database_state = debug_database_state

        self.loader = SignalLoader(store)
        self.ledger = ProcessedSignalLedger(store, clock=clock, dry_run=dry_run)
        self.valuator = StakeExitValuator(decimals=token_decimals)
        self.updater = TradeValueUpdater(
            contract,
            store,
            clock=clock,
            call_delay=call_delay,
            subscriber_delay=subscriber_delay,
            dry_run=dry_run,
        )

    async def check_health(self) -> None:
        """Raise a FatalRunError when the contract or the store is unavailable"""
        if not await self.contract.health_check():
            raise ContractUnavailableError("Blockchain health check failed")
        if not await self.store.health_check():
            raise StoreUnavailableError("Database health check failed")

    # =========================================================================
    # Signal processing flow
    # =========================================================================

    async def run_signal_processing(self) -> ProcessingStats:
        stats = ProcessingStats(start_time=self.clock())
        started = time.monotonic()
        logger.info(f"Starting signal processing at {stats.start_time.isoformat()}")

        with tracer.start_as_current_span("signaltracker.process_signals") as span:
            if self.debug_database_state:
                await self.store.debug_database_state()

            influencers = await self.store.get_all_influencers()
            stats.total_influencers = len(influencers)
            stats.total_subscribers = sum(len(i.subscribers) for i in influencers)
            logger.info(
                f"Found {stats.total_influencers} influencers with "
                f"{stats.total_subscribers} total subscribers"
            )

            if influencers:
                batch = await self.loader.load_for_subscriptions(influencers)
                stats.quarantined_signals = batch.quarantined
                logger.info(f"Found {batch.total_signals} total signals across all influencers")

                aggregator = SignalAggregator(self.ledger, clock=self.clock)
                results = await aggregator.process_all_influencer_signals(
                    influencers, batch.signals_by_influencer
                )
                stats.subscribers_with_signals = len(results)
                stats.total_new_signals = sum(r.new_signals_count for r in results.values())
                stats.subscriber_errors = aggregator.subscriber_errors
                logger.info(generate_processing_summary(results))

                if results:
                    await self.updater.apply_subscriber_results(results, stats)
                    if self.debug_database_state:
                        for address in results:
                            await self.store.debug_user_signal_summary(address)
                else:
                    logger.info("No subscribers with new signals found")
            else:
                logger.info("No influencers found in database")

            span.set_attribute(
                "signaltracker.subscribers_with_signals", stats.subscribers_with_signals
            )
            span.set_attribute("signaltracker.new_signals", stats.total_new_signals)
            span.set_attribute("signaltracker.blockchain_errors", stats.total_blockchain_errors)

        stats.end_time = self.clock()
        metrics.run_duration_seconds.labels(flow="signals").observe(time.monotonic() - started)
        logger.info(
            f"Signal processing completed: influencers={stats.total_influencers}, "
            f"subscribers={stats.total_subscribers}, "
            f"with signals={stats.subscribers_with_signals}, "
            f"new signals={stats.total_new_signals}, "
            f"subscriber errors={stats.subscriber_errors}, "
            f"blockchain updates={stats.total_blockchain_updates}, "
            f"blockchain errors={stats.total_blockchain_errors}"
        )
        return stats

    # =========================================================================
    # Stake exit flow
    # =========================================================================

    async def run_stake_exits(self) -> StakeExitStats:
        stats = StakeExitStats(start_time=self.clock())
        started = time.monotonic()
        logger.info(f"Starting stake exit processing at {stats.start_time.isoformat()}")

        with tracer.start_as_current_span("signaltracker.process_stake_exits") as span:
            user_stakes = await self.store.get_all_user_stakes()
            ready_stakes = select_ready_stakes(user_stakes, self.clock())
            stats.stakes_ready = len(ready_stakes)

            if ready_stakes:
                influencers = await self.store.get_all_influencers()
                influencer_names = [i.name for i in influencers]

                batch = await self.loader.load_for_stakes(influencer_names, ready_stakes)
                stats.quarantined_signals = batch.quarantined

                exits = self.valuator.process_stake_exits(
                    ready_stakes, batch.signals_by_influencer, influencer_names
                )
                stats.total_signals = sum(len(e.signals) for e in exits)
                logger.info(generate_stake_exit_summary(exits))

                await self.updater.apply_stake_exits(exits, stats)
            else:
                logger.info("No stakes ready to exit")

            span.set_attribute("signaltracker.stakes_ready", stats.stakes_ready)
            span.set_attribute("signaltracker.stakes_exited", stats.stakes_exited)
            span.set_attribute("signaltracker.exit_errors", stats.exit_errors)

        stats.end_time = self.clock()
        metrics.run_duration_seconds.labels(flow="exits").observe(time.monotonic() - started)
        logger.info(
            f"Stake exit processing completed: ready={stats.stakes_ready}, "
            f"exited={stats.stakes_exited}, errors={stats.exit_errors}"
        )
        return stats

    # =========================================================================
    # Entry point
    # =========================================================================

    async def _run_flows(self, mode: RunMode) -> dict[str, ProcessingStats | StakeExitStats]:
        results: dict[str, ProcessingStats | StakeExitStats] = {}
        if mode in (RunMode.SIGNALS, RunMode.ALL):
            results["signals"] = await self.run_signal_processing()
        if mode in (RunMode.EXITS, RunMode.ALL):
            results["exits"] = await self.run_stake_exits()
        return results

    async def run(self, mode: RunMode = RunMode.ALL) -> dict[str, ProcessingStats | StakeExitStats]:
        """Health check, take the run lock, and run the requested flows"""
        await self.check_health()

        if self.lock_manager is None:
            return await self._run_flows(mode)

        await self.lock_manager.ensure_indexes()
        try:
            return await self.lock_manager.execute_with_lock(
                self.lock_name, self._run_flows, mode
            )
        except RunLockError as e:
            raise RunLockNotAcquiredError(str(e)) from e
