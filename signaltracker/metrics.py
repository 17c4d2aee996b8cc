"""
Signal Tracker Metrics - Prometheus counters for the processing pipeline

Exported on PROMETHEUS_PORT when PROMETHEUS_ENABLED is set; otherwise they
only accumulate in the default registry.
"""

from prometheus_client import Counter, Histogram

# Aggregation
signals_processed_total = Counter(
    "signaltracker_signals_processed_total",
    "Signals newly counted for a subscriber",
    ["influencer"],
)

subscribers_processed_total = Counter(
    "signaltracker_subscribers_processed_total",
    "Subscribers with a committed batch of new signals",
)

subscriber_errors_total = Counter(
    "signaltracker_subscriber_errors_total",
    "Subscriber batches that failed and were left for the next run",
)

signals_quarantined_total = Counter(
    "signaltracker_signals_quarantined_total",
    "Signal documents rejected at decoding",
)

# Ledger
ledger_read_failures_total = Counter(
    "signaltracker_ledger_read_failures_total",
    "Processed-signal lookups that failed and fell back to an empty set",
)

ledger_write_failures_total = Counter(
    "signaltracker_ledger_write_failures_total",
    "Processed-signal batches that failed to persist",
)

# Contract calls
trade_value_updates_total = Counter(
    "signaltracker_trade_value_updates_total",
    "updateTradeValue calls by outcome",
    ["status"],
)

stake_exits_total = Counter(
    "signaltracker_stake_exits_total",
    "exitTrade calls by outcome",
    ["status"],
)

# Runs
run_duration_seconds = Histogram(
    "signaltracker_run_duration_seconds",
    "Duration of a processing flow",
    ["flow"],
    buckets=[1, 5, 15, 30, 60, 120, 300, 600, 1800],
)
