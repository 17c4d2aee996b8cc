"""
Command line entry point: one processing pass per invocation.

    python -m signaltracker [--mode signals|exits|all] [--dry-run]
                            [--debug-user ADDRESS [--debug-stake INDEX]]

The scheduler that invokes this is external. Exit status is non-zero only when
the run could not start (configuration, health checks, run lock).
"""

import argparse
import asyncio
import logging
import sys

from prometheus_client import start_http_server

from otel_init import setup_telemetry, shutdown_telemetry
from shared.config import Settings, settings
from shared.constants import APP_DESCRIPTION, APP_NAME, APP_VERSION, SERVICE_NAME, RunMode
from shared.distributed_lock import DistributedLockManager
from shared.logger import configure_logging
from signaltracker.chain.base import StakingContract
from signaltracker.chain.simulator import SimulatedStakingContract
from signaltracker.chain.web3_contract import Web3StakingContract
from signaltracker.db.mongodb_client import MongoDBClient
from signaltracker.errors import ConfigurationError, FatalRunError, StoreUnavailableError
from signaltracker.processor import SignalProcessingJob

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="signaltracker",
        description=APP_DESCRIPTION,
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in RunMode],
        default=RunMode.ALL.value,
        help="Which flow to run (default: all)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help=(
            "Use the simulated staking contract and leave the ledger and "
            "trade value history untouched"
        ),
    )
    parser.add_argument(
        "--debug-user",
        metavar="ADDRESS",
        help="Log the stored signal summary of one subscriber and exit",
    )
    parser.add_argument(
        "--debug-stake",
        metavar="INDEX",
        type=int,
        default=0,
        help="Stake index whose last pushed value --debug-user reports (default: 0)",
    )
    return parser.parse_args(argv)


def build_store(config: Settings) -> MongoDBClient:
    return MongoDBClient(
        config.get_mongodb_connection_string(),
        influencers_db_name=config.influencers_db_name,
        backtesting_db_name=config.backtesting_db_name,
        signal_tracking_db_name=config.signal_tracking_db_name,
        world_staking_db_name=config.world_staking_db_name,
        timeout_ms=config.mongodb_timeout_ms,
    )


async def build_contract(config: Settings, store: MongoDBClient) -> StakingContract:
    if config.simulation_enabled:
        logger.info("Simulation enabled: using in-memory staking contract")
        contract = SimulatedStakingContract()
        contract.load_user_stakes(await store.get_all_user_stakes(), config.token_decimals)
        return contract

    return Web3StakingContract(
        private_key=config.private_key,
        contract_address=config.staking_contract_address,
        rpc_url=config.rpc_url,
        chain_id=config.chain_id,
        timeout=config.rpc_timeout,
    )


async def run(args: argparse.Namespace, config: Settings) -> int:
    try:
        config.validate_required_settings()
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    store = build_store(config)
    try:
        try:
            await store.connect()
        except Exception as e:
            raise StoreUnavailableError(f"Failed to connect to MongoDB: {e}") from e

        if args.debug_user:
            await store.debug_user_signal_summary(args.debug_user, args.debug_stake)
            return 0

        contract = await build_contract(config, store)
        lock_manager = None
        if config.run_lock_enabled:
            lock_manager = DistributedLockManager(
                store.get_run_locks_collection(),
                lock_timeout=config.run_lock_timeout_seconds,
                heartbeat_interval=config.run_lock_heartbeat_seconds,
            )

        job = SignalProcessingJob(
            store,
            contract,
            lock_manager=lock_manager,
            lock_name=config.run_lock_name,
            token_decimals=config.token_decimals,
            call_delay=config.trade_update_delay_seconds,
            subscriber_delay=config.subscriber_delay_seconds,
            debug_database_state=config.debug_database_state,
            dry_run=args.dry_run,
        )
        results = await job.run(RunMode(args.mode))
        for flow, stats in results.items():
            logger.info(f"Final {flow} statistics: {stats.model_dump(mode='json')}")
        return 0
    finally:
        await store.disconnect()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = settings.model_copy(update={"simulation_enabled": True}) if args.dry_run else settings

    configure_logging(config.log_level)
    setup_telemetry(service_name=SERVICE_NAME, service_version=APP_VERSION)
    if config.prometheus_enabled:
        start_http_server(config.prometheus_port)
        logger.info(f"Prometheus metrics exposed on port {config.prometheus_port}")

    logger.info(f"Starting {APP_NAME} v{APP_VERSION} (mode={args.mode})")
    try:
        return asyncio.run(run(args, config))
    except FatalRunError as e:
        logger.error(f"Fatal error, run aborted: {e}")
        return 1
    finally:
        shutdown_telemetry()


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
