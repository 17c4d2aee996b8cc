"""
Tests for per-subscriber signal aggregation.
"""

from datetime import timedelta

import pytest

from contracts.influencer import Influencer, Subscriber
from contracts.tracking import SubscriberResult
from signaltracker.ledger import ProcessedSignalLedger
from signaltracker.signal_aggregator import SignalAggregator, generate_processing_summary
from tests.conftest import SUBSCRIBED_AT, make_signal


@pytest.fixture
def aggregator(store, clock):
    return SignalAggregator(ProcessedSignalLedger(store, clock=clock), clock=clock)


def day(n: float):
    return SUBSCRIBED_AT + timedelta(days=n)


class TestProcessSubscriber:
    @pytest.mark.asyncio
    async def test_aggregates_signals_in_window(self, aggregator, influencer, subscriber, store):
        signals = [
            make_signal("s1", day(1), "5%"),
            make_signal("s2", day(2), "5%"),
            make_signal("late", day(8), "50%"),
        ]

        result = await aggregator.process_subscriber(influencer, subscriber, signals)

        assert result is not None
        assert result.new_signals_count == 2
        assert result.new_pnl == "10.00%"
        assert result.cumulative_total == "10.00%"
        assert [s.id for s in result.signals] == ["s1", "s2"]
        assert set(store.processed) == {("0xabc", "s1"), ("0xabc", "s2")}

    @pytest.mark.asyncio
    async def test_signal_at_subscription_instant_is_excluded(
        self, aggregator, influencer, subscriber, store
    ):
        result = await aggregator.process_subscriber(
            influencer, subscriber, [make_signal("s0", SUBSCRIBED_AT, "5%")]
        )

        assert result is None
        assert store.insert_calls == 0

    @pytest.mark.asyncio
    async def test_nothing_new_writes_nothing(self, aggregator, influencer, subscriber, store):
        signals = [make_signal("s1", day(1), "5%")]
        await aggregator.process_subscriber(influencer, subscriber, signals)
        insert_calls = store.insert_calls

        assert await aggregator.process_subscriber(influencer, subscriber, signals) is None
        assert store.insert_calls == insert_calls

    @pytest.mark.asyncio
    async def test_cumulative_total_builds_on_summary(
        self, aggregator, influencer, subscriber
    ):
        await aggregator.process_subscriber(
            influencer, subscriber, [make_signal("s1", day(1), "5%")]
        )
        result = await aggregator.process_subscriber(
            influencer,
            subscriber,
            [make_signal("s1", day(1), "5%"), make_signal("s2", day(2), "-2.5%")],
        )

        assert result.new_signals_count == 1
        assert result.new_pnl == "-2.50%"
        assert result.cumulative_total == "2.50%"

    @pytest.mark.asyncio
    async def test_unreadable_ledger_does_not_double_count(
        self, aggregator, influencer, subscriber, store
    ):
        """Signals re-offered after a failed lookup are absorbed by the unique key"""
        signals = [make_signal("s1", day(1), "5%")]
        await aggregator.process_subscriber(influencer, subscriber, signals)
        store.fail_processed_reads = True

        assert await aggregator.process_subscriber(influencer, subscriber, signals) is None
        assert store.summaries["0xabc"].total_pnl_percentage == pytest.approx(5.0)

    @pytest.mark.asyncio
    async def test_partially_recorded_batch_reports_only_new_rows(
        self, aggregator, influencer, subscriber, store
    ):
        """The result matches what the summary was incremented by"""
        await aggregator.process_subscriber(
            influencer, subscriber, [make_signal("s1", day(1), "5%")]
        )
        store.fail_processed_reads = True

        result = await aggregator.process_subscriber(
            influencer,
            subscriber,
            [make_signal("s1", day(1), "5%"), make_signal("s2", day(2), "3%")],
        )

        assert result.new_signals_count == 1
        assert [s.id for s in result.signals] == ["s2"]
        assert result.new_pnl == "3.00%"
        assert result.cumulative_total == "8.00%"
        assert store.summaries["0xabc"].total_pnl_percentage == pytest.approx(8.0)

    @pytest.mark.asyncio
    async def test_ledger_write_failure_propagates(
        self, aggregator, influencer, subscriber, store
    ):
        store.fail_inserts = True
        with pytest.raises(RuntimeError):
            await aggregator.process_subscriber(
                influencer, subscriber, [make_signal("s1", day(1), "5%")]
            )


class TestProcessAllInfluencerSignals:
    @pytest.mark.asyncio
    async def test_invalid_signals_are_filtered(self, aggregator, influencer):
        signals_map = {
            "alice": [
                make_signal("ok", day(1), "3%"),
                make_signal("not-done", day(1), "3%", backtest_done=False),
                make_signal("bad", day(1), "n/a"),
            ]
        }

        results = await aggregator.process_all_influencer_signals([influencer], signals_map)

        assert results["0xabc"].new_signals_count == 1
        assert results["0xabc"].cumulative_total == "3.00%"

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_skipped(self, aggregator, store):
        good = Subscriber(address="0xgood", subscribed_at=SUBSCRIBED_AT)
        bad = Subscriber(address="0xbad", subscribed_at=SUBSCRIBED_AT)
        influencer = Influencer(name="alice", subscribers=[bad, good])
        original = store.get_user_signal_summary

        async def flaky_summary(address):
            if address == "0xbad":
                raise RuntimeError("summary unavailable")
            return await original(address)

        store.get_user_signal_summary = flaky_summary

        results = await aggregator.process_all_influencer_signals(
            [influencer], {"alice": [make_signal("s1", day(1), "5%")]}
        )

        assert list(results) == ["0xgood"]
        assert aggregator.subscriber_errors == 1
        assert ("0xbad", "s1") not in store.processed

    @pytest.mark.asyncio
    async def test_same_address_across_influencers_is_merged(self, aggregator, subscriber):
        alice = Influencer(name="alice", subscribers=[subscriber])
        carol = Influencer(name="carol", subscribers=[subscriber])
        signals_map = {
            "alice": [make_signal("a1", day(1), "4%")],
            "carol": [make_signal("c1", day(2), "2%", account="carol")],
        }

        results = await aggregator.process_all_influencer_signals([alice, carol], signals_map)

        merged = results["0xabc"]
        assert merged.influencer_names == ["alice", "carol"]
        assert merged.new_signals_count == 2
        assert merged.new_pnl == "6.00%"
        assert merged.cumulative_total == "6.00%"

    @pytest.mark.asyncio
    async def test_influencer_without_signals_or_subscribers(self, aggregator, subscriber):
        lonely = Influencer(name="lonely")
        quiet = Influencer(name="quiet", subscribers=[subscriber])

        assert await aggregator.process_all_influencer_signals([lonely, quiet], {}) == {}


def test_generate_processing_summary():
    results = {
        "0x1": SubscriberResult(subscriber_address="0x1", new_signals_count=2, cumulative_total="3.00%"),
        "0x2": SubscriberResult(subscriber_address="0x2", new_signals_count=1, cumulative_total="-1.00%"),
        "0x3": SubscriberResult(subscriber_address="0x3", new_signals_count=1, cumulative_total="0.00%"),
    }

    summary = generate_processing_summary(results)

    assert "Total subscribers with new signals: 3" in summary
    assert "Total new signals processed: 4" in summary
    assert "positive cumulative P&L: 1" in summary
    assert "negative cumulative P&L: 1" in summary
    assert "neutral cumulative P&L: 1" in summary
