"""
Signal tracking contracts (signal_tracking_db).

ProcessedSignalRecord rows form the ledger of (subscriber, signal) pairs that
have already been counted; UserSignalSummary is the running total derived
from them; UserTradeValueUpdate is the audit trail of on-chain value changes.
Field aliases match the persisted document keys.
"""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from contracts.base import TokenAmount, UTCDateTime
from contracts.signal import BacktestSignal
from signaltracker.pnl import add_percent, parse_percent


def utc_now() -> datetime:
    return datetime.now(UTC)


class ProcessedSignalRecord(BaseModel):
    """Append-only fact: this signal has been counted for this subscriber"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subscriber_address: str = Field(..., alias="subscriberAddress")
    signal_id: str = Field(..., alias="signalId")
    influencer_name: str = Field(..., alias="influencerName")
    final_pnl: str = Field(..., alias="finalPnL")
    signal_generated_at: UTCDateTime = Field(..., alias="signalGenerationDate")
    processed_at: UTCDateTime = Field(default_factory=utc_now, alias="processedAt")


class UserSignalSummary(BaseModel):
    """Running per-subscriber totals, only ever incremented"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subscriber_address: str = Field(..., alias="subscriberAddress")
    total_signals_processed: int = Field(0, alias="totalSignalsProcessed")
    total_pnl_percentage: float = Field(0.0, alias="totalPnLPercentage")
    last_processed_at: UTCDateTime | None = Field(None, alias="lastProcessedAt")
    last_signal_date: UTCDateTime | None = Field(None, alias="lastSignalDate")


class UserTradeValueUpdate(BaseModel):
    """Audit row for a confirmed on-chain trade value change"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subscriber_address: str = Field(..., alias="subscriberAddress")
    stake_index: int = Field(..., alias="stakeIndex")
    original_trading_amount: TokenAmount = Field(..., alias="originalTradingAmount")
    new_trade_value: TokenAmount = Field(..., alias="newTradeValue")
    pnl_percentage: str = Field(..., alias="pnlPercentage")
    updated_at: UTCDateTime = Field(default_factory=utc_now, alias="updatedAt")
    tx_hash: str | None = Field(None, alias="blockchainTxHash")
    update_type: Literal["periodic", "exit"] = Field("periodic", alias="updateType")


class SubscriberResult(BaseModel):
    """Outcome of one aggregation pass for a subscriber"""

    subscriber_address: str
    username: str = ""
    influencer_names: list[str] = Field(default_factory=list)
    signals: list[BacktestSignal] = Field(default_factory=list)
    new_signals_count: int = 0
    new_pnl: str = "0%"
    cumulative_total: str = "0%"

    def merge(self, other: "SubscriberResult") -> "SubscriberResult":
        """Fold a later result for the same address into this one.

        The later result was computed against a summary that already includes
        this one, so its cumulative total wins; the new P&L of both batches adds up.
        """
        return self.model_copy(
            update={
                "influencer_names": self.influencer_names + other.influencer_names,
                "signals": self.signals + other.signals,
                "new_signals_count": self.new_signals_count + other.new_signals_count,
                "new_pnl": add_percent(parse_percent(self.new_pnl) or 0.0, other.new_pnl),
                "cumulative_total": other.cumulative_total,
            }
        )


class ProcessingStats(BaseModel):
    """Aggregate report of a periodic signal processing run"""

    total_influencers: int = 0
    total_subscribers: int = 0
    subscribers_with_signals: int = 0
    total_new_signals: int = 0
    quarantined_signals: int = 0
    subscriber_errors: int = 0
    total_blockchain_updates: int = 0
    total_blockchain_errors: int = 0
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None


class StakeExitStats(BaseModel):
    """Aggregate report of a stake exit run"""

    stakes_ready: int = 0
    stakes_exited: int = 0
    exit_errors: int = 0
    total_signals: int = 0
    quarantined_signals: int = 0
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None
