"""
Staking contract interface.

Implementations report failures through their return values (0 stakes, None
details, an unsuccessful TxResult, False) rather than raising, so one failed
call never aborts a processing loop.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from contracts.stake import StakeDetails


class TxResult(BaseModel):
    """Outcome of a state-changing contract call"""

    success: bool
    tx_hash: str | None = None


class StakingContract(ABC):
    """Operations the tracker needs from the World staking contract"""

    @abstractmethod
    async def health_check(self) -> bool: ...

    @abstractmethod
    async def get_stake_count(self, user_address: str) -> int:
        """Number of stakes of a user, 0 when the call fails"""

    @abstractmethod
    async def get_stake_details(
        self, user_address: str, stake_index: int
    ) -> StakeDetails | None:
        """On-chain view of a stake, None when the call fails"""

    @abstractmethod
    async def update_trade_value(
        self, user_address: str, stake_index: int, new_value: int
    ) -> TxResult: ...

    @abstractmethod
    async def exit_trade(self, user_address: str, stake_index: int, final_value: int) -> bool: ...
