"""
Processed-signal ledger.

The ledger is the persisted set of (subscriber, signal) pairs that have been
counted, plus the per-subscriber running summary derived from it. It is the
only writer of both. Uniqueness of (subscriber, signal) relies on runs not
overlapping (see shared.distributed_lock) and is backed by a unique index.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from contracts.tracking import ProcessedSignalRecord, UserSignalSummary, utc_now
from signaltracker import metrics
from signaltracker.db.base import TrackingStore
from signaltracker.pnl import parse_percent

logger = logging.getLogger(__name__)


class ProcessedSignalLedger:
    """Narrow ledger interface used by the aggregation engine"""

    def __init__(
        self,
        store: TrackingStore,
        clock: Callable[[], datetime] = utc_now,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.clock = clock
        self.dry_run = dry_run

    async def already_processed(self, subscriber_address: str) -> set[str]:
        """Signal ids already counted for a subscriber.

        A failed lookup degrades to the empty set: the batch is then treated as
        unprocessed, which risks double counting but never loses signals.
        """
        try:
            return await self.store.get_processed_signal_ids(subscriber_address)
        except Exception as e:
            metrics.ledger_read_failures_total.inc()
            logger.error(
                f"Error retrieving processed signal IDs for {subscriber_address}, "
                f"treating all signals as unprocessed: {e}"
            )
            return set()

    async def record_processed(
        self, subscriber_address: str, records: list[ProcessedSignalRecord]
    ) -> list[ProcessedSignalRecord]:
        """Persist a batch and fold it into the subscriber's summary.

        Errors propagate; the batch then stays unprocessed for the next run.
        In a dry run nothing is written and the whole batch is reported.

        Returns:
            The records actually recorded; rows already in the ledger are left out
        """
        if not records:
            return []

        if self.dry_run:
            logger.info(
                f"Dry run: not recording {len(records)} signals for {subscriber_address}"
            )
            return records

        try:
            inserted = await self.store.insert_processed_signals(records)
            if not inserted:
                return []

            pnl_total = sum(parse_percent(r.final_pnl) or 0.0 for r in inserted)
            await self.store.increment_user_summary(
                subscriber_address,
                signals_processed=len(inserted),
                pnl_percentage=pnl_total,
                last_processed_at=self.clock(),
                last_signal_date=max(r.signal_generated_at for r in inserted),
            )
        except Exception:
            metrics.ledger_write_failures_total.inc()
            raise

        logger.info(
            f"Marked {len(inserted)} signals as processed for {subscriber_address}: "
            f"{[r.signal_id for r in inserted]}"
        )
        return inserted

    async def current_summary(self, subscriber_address: str) -> UserSignalSummary | None:
        """Running summary before the next batch is added"""
        return await self.store.get_user_signal_summary(subscriber_address)
