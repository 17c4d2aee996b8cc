"""
Signal Aggregator - per-subscriber P&L accumulation

For every (influencer, subscriber) pair this module selects the influencer's
valid signals inside the subscription window, drops the ones the ledger has
already counted for the subscriber, and folds the rest into the subscriber's
cumulative P&L. A batch is reported only once it has been written to the
ledger, so a failed write leaves the signals unprocessed for the next run.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime

from contracts.influencer import Influencer, Subscriber
from contracts.signal import BacktestSignal
from contracts.tracking import ProcessedSignalRecord, SubscriberResult, utc_now
from signaltracker import metrics
from signaltracker.ledger import ProcessedSignalLedger
from signaltracker.pnl import add_percent, filter_valid_signals, parse_percent, sum_pnl
from signaltracker.windows import signals_in_subscription_window, subscription_window_end

logger = logging.getLogger(__name__)


class SignalAggregator:
    """Accumulates new signal P&L into per-subscriber cumulative totals"""

    def __init__(
        self,
        ledger: ProcessedSignalLedger,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.ledger = ledger
        self.clock = clock
        self.subscriber_errors = 0

    async def filter_unprocessed_signals(
        self, subscriber_address: str, signals: list[BacktestSignal]
    ) -> list[BacktestSignal]:
        """Drop signals the ledger already holds for this subscriber"""
        processed_ids = await self.ledger.already_processed(subscriber_address)
        unprocessed = [s for s in signals if s.id not in processed_ids]

        skipped = len(signals) - len(unprocessed)
        if skipped:
            logger.debug(f"Skipping {skipped} already processed signals for {subscriber_address}")
        logger.debug(
            f"{len(unprocessed)} unprocessed out of {len(signals)} total for {subscriber_address}"
        )
        return unprocessed

    async def process_subscriber(
        self,
        influencer: Influencer,
        subscriber: Subscriber,
        valid_signals: list[BacktestSignal],
    ) -> SubscriberResult | None:
        """Aggregate one subscriber's new signals.

        Returns None when there is nothing new; nothing is written in that case.
        """
        relevant = signals_in_subscription_window(valid_signals, subscriber.subscribed_at)
        if not relevant:
            logger.debug(
                f"No relevant signals for {subscriber.address} from {influencer.name} "
                f"within the subscription window"
            )
            return None

        unprocessed = await self.filter_unprocessed_signals(subscriber.address, relevant)
        if not unprocessed:
            logger.info(
                f"No new signals to process for {subscriber.address} from {influencer.name}"
            )
            return None

        logger.info(
            f"Processing signals for {subscriber.address} subscribed on "
            f"{subscriber.subscribed_at.isoformat()}, window ends "
            f"{subscription_window_end(subscriber.subscribed_at).isoformat()}"
        )

        summary = await self.ledger.current_summary(subscriber.address)
        existing_total = summary.total_pnl_percentage if summary else 0.0

        processed_at = self.clock()
        records = [
            ProcessedSignalRecord(
                subscriber_address=subscriber.address,
                signal_id=signal.id,
                influencer_name=influencer.name,
                final_pnl=signal.final_pnl or "",
                signal_generated_at=signal.generated_at,
                processed_at=processed_at,
            )
            for signal in unprocessed
        ]
        recorded = await self.ledger.record_processed(subscriber.address, records)
        if not recorded:
            logger.warning(
                f"All {len(records)} signals for {subscriber.address} were already in "
                f"the ledger, skipping"
            )
            return None

        # Report exactly what the summary was incremented by
        recorded_ids = {r.signal_id for r in recorded}
        new_signals = [s for s in unprocessed if s.id in recorded_ids]
        new_pnl = sum_pnl(recorded)
        cumulative_total = add_percent(existing_total, new_pnl)

        metrics.signals_processed_total.labels(influencer=influencer.name).inc(
            len(new_signals)
        )
        logger.info(
            f"Subscriber {subscriber.address} ({subscriber.username}) from "
            f"{influencer.name}: {len(new_signals)} new signals processed, "
            f"new P&L: {new_pnl}, cumulative total P&L: {cumulative_total}"
        )

        return SubscriberResult(
            subscriber_address=subscriber.address,
            username=subscriber.username,
            influencer_names=[influencer.name],
            signals=new_signals,
            new_signals_count=len(new_signals),
            new_pnl=new_pnl,
            cumulative_total=cumulative_total,
        )

    async def process_all_influencer_signals(
        self,
        influencers: Iterable[Influencer],
        signals_map: Mapping[str, list[BacktestSignal]],
    ) -> dict[str, SubscriberResult]:
        """Process every subscriber of every influencer, one at a time.

        A failing subscriber is logged and counted; the loop carries on.
        """
        results: dict[str, SubscriberResult] = {}

        for influencer in influencers:
            influencer_signals = signals_map.get(influencer.name, [])
            valid_signals = filter_valid_signals(influencer_signals)
            logger.info(
                f"Processing {influencer.name}: {len(valid_signals)} valid signals "
                f"out of {len(influencer_signals)} total"
            )

            if not influencer.subscribers:
                logger.info(f"Skipping {influencer.name}: no subscribers")
                continue

            for subscriber in influencer.subscribers:
                try:
                    result = await self.process_subscriber(
                        influencer, subscriber, valid_signals
                    )
                except Exception as e:
                    self.subscriber_errors += 1
                    metrics.subscriber_errors_total.inc()
                    logger.error(
                        f"Error processing signals for subscriber {subscriber.address} "
                        f"from {influencer.name}: {e}"
                    )
                    continue

                if result is None:
                    continue

                metrics.subscribers_processed_total.inc()
                previous = results.get(subscriber.address)
                results[subscriber.address] = (
                    previous.merge(result) if previous else result
                )

        return results


def generate_processing_summary(results: Mapping[str, SubscriberResult]) -> str:
    """Human readable report of an aggregation pass"""
    total_subscribers = len(results)
    total_new_signals = sum(r.new_signals_count for r in results.values())
    totals = [parse_percent(r.cumulative_total) or 0.0 for r in results.values()]
    profitable = sum(1 for t in totals if t > 0)
    unprofitable = sum(1 for t in totals if t < 0)

    return "\n".join(
        [
            "Processing Summary (subscription window):",
            f"- Total subscribers with new signals: {total_subscribers}",
            f"- Total new signals processed: {total_new_signals}",
            f"- Subscribers with positive cumulative P&L: {profitable}",
            f"- Subscribers with negative cumulative P&L: {unprofitable}",
            "- Subscribers with neutral cumulative P&L: "
            f"{total_subscribers - profitable - unprofitable}",
        ]
    )
