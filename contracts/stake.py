"""
Stake contracts: staking records from the world-staking database, the
on-chain stake view, and the one-shot exit payload.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from contracts.base import TokenAmount, UTCDateTime
from contracts.signal import BacktestSignal


class StakeRecord(BaseModel):
    """A single staked position as mirrored off-chain"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    stake_amount: float = Field(
        ..., alias="stakeAmount", description="Staked amount in major units"
    )
    trading_amount: float | None = Field(None, alias="tradingAmount")
    opened_at: UTCDateTime = Field(
        ..., alias="timestamp", description="When the stake was opened"
    )
    exit_timestamp: UTCDateTime = Field(
        ..., alias="exitTimestamp", description="Scheduled exit time"
    )

    def is_ready_to_exit(self, now: datetime) -> bool:
        return now >= self.exit_timestamp


class UserStakes(BaseModel):
    """All stakes of one wallet (world-staking.stakes)"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    wallet_address: str = Field(..., alias="walletAddress")
    stakes: list[StakeRecord] = Field(default_factory=list)


class ReadyStake(BaseModel):
    """A stake whose exit timestamp has passed"""

    owner_address: str
    index: int = Field(..., ge=0, description="Stake index on the contract")
    stake: StakeRecord


class StakeDetails(BaseModel):
    """On-chain view returned by getStakeDetails"""

    amount: int
    timestamp: int
    trading_amount: int
    current_trade_value: int
    trade_active: bool
    claimable_rewards: int
    active: bool


class StakeExitData(BaseModel):
    """Computed payload for a one-time exitTrade call"""

    owner_address: str
    stake_index: int
    stake: StakeRecord
    signals: list[BacktestSignal] = Field(default_factory=list)
    total_pnl: str = "0%"
    trading_amount: TokenAmount = 0
    final_trade_value: TokenAmount = 0
