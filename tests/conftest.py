"""
Global test configuration and fixtures for the World Signal Tracker.
"""

import os
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

# Set up test environment BEFORE any imports that might trigger validation
os.environ.update(
    {
        "MONGODB_URI": "mongodb://localhost:27017",
        "ENVIRONMENT": "test",
        "LOG_LEVEL": "DEBUG",
        "SIMULATION_ENABLED": "true",
        "PROMETHEUS_ENABLED": "false",
        "ENABLE_OTEL": "false",
        "TRADE_UPDATE_DELAY_SECONDS": "0",
        "SUBSCRIBER_DELAY_SECONDS": "0",
    }
)

from contracts.influencer import Influencer, Subscriber  # noqa: E402
from contracts.signal import BacktestSignal  # noqa: E402
from tests.integration.fakes import InMemoryTrackingStore  # noqa: E402

SUBSCRIBED_AT = datetime(2024, 1, 1, tzinfo=UTC)
RUN_TIME = datetime(2024, 2, 1, tzinfo=UTC)


class FixedClock:
    """Deterministic clock; advance it between runs"""

    def __init__(self, now: datetime = RUN_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def signal_doc(
    signal_id: str,
    generated_at: datetime,
    pnl: Any = "5%",
    account: str = "alice",
    backtest_done: bool = True,
) -> dict[str, Any]:
    """Raw backtesting document as stored in MongoDB"""
    return {
        "_id": signal_id,
        "Twitter Account": account,
        "Signal Generation Date": generated_at,
        "Final P&L": pnl,
        "backtesting_done": backtest_done,
        "Token Mentioned": "WLD",
    }


def make_signal(
    signal_id: str,
    generated_at: datetime,
    pnl: Any = "5%",
    account: str = "alice",
    backtest_done: bool = True,
) -> BacktestSignal:
    return BacktestSignal.model_validate(
        signal_doc(signal_id, generated_at, pnl, account, backtest_done)
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> InMemoryTrackingStore:
    return InMemoryTrackingStore()


@pytest.fixture
def subscriber() -> Subscriber:
    return Subscriber(address="0xabc", username="bob", subscribed_at=SUBSCRIBED_AT)


@pytest.fixture
def influencer(subscriber: Subscriber) -> Influencer:
    return Influencer(name="alice", subscribers=[subscriber])


@pytest.fixture
def signal_factory() -> Callable[..., BacktestSignal]:
    return make_signal
