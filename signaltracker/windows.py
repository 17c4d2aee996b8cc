"""
Signal windows.

Two policies decide which signals count, and they differ on purpose at the
boundaries, so they are kept as two separate operations:

* subscription window ``(subscribed_at, subscribed_at + 7 days]``: a signal
  generated at the subscription instant predates the subscription and is
  excluded, one generated exactly at the end is included;
* stake window ``[opened_at, exit_timestamp]``: both ends are on-chain events
  and both are included.

Store queries only narrow the candidate set with inclusive ranges; the exact
boundaries are decided here.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from contracts.influencer import Subscriber
from contracts.signal import BacktestSignal
from contracts.stake import StakeRecord
from shared.constants import SUBSCRIPTION_WINDOW_DAYS

SUBSCRIPTION_WINDOW = timedelta(days=SUBSCRIPTION_WINDOW_DAYS)


def subscription_window_end(subscribed_at: datetime) -> datetime:
    return subscribed_at + SUBSCRIPTION_WINDOW


def in_subscription_window(generated_at: datetime, subscribed_at: datetime) -> bool:
    """True when subscribed_at < generated_at <= subscribed_at + 7 days"""
    return subscribed_at < generated_at <= subscription_window_end(subscribed_at)


def in_stake_window(
    generated_at: datetime, opened_at: datetime, exit_timestamp: datetime
) -> bool:
    """True when opened_at <= generated_at <= exit_timestamp"""
    return opened_at <= generated_at <= exit_timestamp


def signals_in_subscription_window(
    signals: Iterable[BacktestSignal], subscribed_at: datetime
) -> list[BacktestSignal]:
    return [s for s in signals if in_subscription_window(s.generated_at, subscribed_at)]


def signals_in_stake_window(
    signals: Iterable[BacktestSignal], stake: StakeRecord
) -> list[BacktestSignal]:
    return [
        s
        for s in signals
        if in_stake_window(s.generated_at, stake.opened_at, stake.exit_timestamp)
    ]


def subscription_fetch_range(
    subscribers: Iterable[Subscriber],
) -> tuple[datetime, datetime] | None:
    """Inclusive range covering every subscriber's window, or None if empty"""
    dates = [sub.subscribed_at for sub in subscribers]
    if not dates:
        return None
    return min(dates), subscription_window_end(max(dates))


def stake_fetch_range(stakes: Iterable[StakeRecord]) -> tuple[datetime, datetime] | None:
    """Inclusive range covering every stake window, or None if empty"""
    stakes = list(stakes)
    if not stakes:
        return None
    return (
        min(stake.opened_at for stake in stakes),
        max(stake.exit_timestamp for stake in stakes),
    )
