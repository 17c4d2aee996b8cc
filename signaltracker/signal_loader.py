"""
Signal ingestion.

Fetches backtesting documents with one store query per influencer, covering
the union of the windows that will be evaluated, and decodes them into
BacktestSignal records. Documents that fail decoding are quarantined (logged
and counted) rather than passed along.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from contracts.influencer import Influencer
from contracts.signal import BacktestSignal
from contracts.stake import ReadyStake
from signaltracker import metrics
from signaltracker.db.base import TrackingStore, decode_documents
from signaltracker.windows import stake_fetch_range, subscription_fetch_range

logger = logging.getLogger(__name__)


@dataclass
class SignalBatch:
    """Decoded signals keyed by influencer name"""

    signals_by_influencer: dict[str, list[BacktestSignal]] = field(default_factory=dict)
    quarantined: int = 0

    @property
    def total_signals(self) -> int:
        return sum(len(signals) for signals in self.signals_by_influencer.values())


class SignalLoader:
    """Loads the signals relevant to subscription and stake windows"""

    def __init__(self, store: TrackingStore) -> None:
        self.store = store

    async def _load(
        self, influencer_name: str, start: datetime, end: datetime, batch: SignalBatch
    ) -> None:
        docs = await self.store.find_signal_documents(influencer_name, start, end)
        signals, rejected = decode_documents(BacktestSignal, docs, "signal")
        if rejected:
            metrics.signals_quarantined_total.inc(rejected)
        batch.signals_by_influencer[influencer_name] = signals
        batch.quarantined += rejected
        logger.info(
            f"Retrieved {len(signals)} signals for {influencer_name} in date range "
            f"{start.isoformat()} to {end.isoformat()}"
        )
        if logger.isEnabledFor(logging.DEBUG):
            for signal in signals:
                logger.debug(f"Signal for {influencer_name}: {signal.describe()}")

    async def load_for_subscriptions(self, influencers: Iterable[Influencer]) -> SignalBatch:
        """Signals from each influencer's earliest subscription to its latest
        subscription plus the window length."""
        batch = SignalBatch()

        for influencer in influencers:
            fetch_range = subscription_fetch_range(influencer.subscribers)
            if fetch_range is None:
                logger.info(f"Skipping influencer {influencer.name}: no subscribers found")
                continue

            try:
                await self._load(influencer.name, *fetch_range, batch)
            except Exception as e:
                # Other influencers are still processed
                logger.error(f"Failed to get signals for influencer {influencer.name}: {e}")

        return batch

    async def load_for_stakes(
        self, influencer_names: Iterable[str], ready_stakes: list[ReadyStake]
    ) -> SignalBatch:
        """Signals of every influencer covering all ready stakes' windows."""
        batch = SignalBatch()
        fetch_range = stake_fetch_range(ready.stake for ready in ready_stakes)
        if fetch_range is None:
            return batch

        for name in influencer_names:
            try:
                await self._load(name, *fetch_range, batch)
            except Exception as e:
                logger.error(f"Failed to get signals for influencer {name}: {e}")

        return batch
