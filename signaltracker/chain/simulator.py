"""
In-memory staking contract for dry runs and development.

Stakes are seeded explicitly or mirrored from the world-staking documents;
writes only change the in-memory state and return fake transaction hashes.
"""

import logging
import random
import uuid
from decimal import Decimal

from contracts.stake import StakeDetails, UserStakes
from shared.constants import SIMULATION_SUCCESS_RATE, TOKEN_DECIMALS
from signaltracker.chain.base import StakingContract, TxResult
from signaltracker.stake_exit import calculate_trading_amount

logger = logging.getLogger(__name__)


class SimulatedStakingContract(StakingContract):
    """Simulated contract for testing and development"""

    def __init__(self, success_rate: float = SIMULATION_SUCCESS_RATE) -> None:
        self.success_rate = success_rate
        self.stakes: dict[str, list[StakeDetails]] = {}
        self.updates: list[tuple[str, int, int]] = []
        self.exits: list[tuple[str, int, int]] = []

    def add_stake(self, user_address: str, details: StakeDetails) -> int:
        """Seed a stake and return its index"""
        user_stakes = self.stakes.setdefault(user_address.lower(), [])
        user_stakes.append(details)
        return len(user_stakes) - 1

    def load_user_stakes(
        self, user_stakes: list[UserStakes], decimals: int = TOKEN_DECIMALS
    ) -> None:
        """Mirror stake documents as active trading stakes"""
        for user in user_stakes:
            for stake in user.stakes:
                trading_amount = calculate_trading_amount(stake.stake_amount, decimals)
                self.add_stake(
                    user.wallet_address,
                    StakeDetails(
                        amount=int(Decimal(str(stake.stake_amount)) * 10**decimals),
                        timestamp=int(stake.opened_at.timestamp()),
                        trading_amount=trading_amount,
                        current_trade_value=trading_amount,
                        trade_active=True,
                        claimable_rewards=0,
                        active=True,
                    ),
                )
        logger.info(f"Simulated contract loaded stakes for {len(user_stakes)} users")

    def _succeeds(self) -> bool:
        return random.random() <= self.success_rate

    def _fake_tx_hash(self) -> str:
        return "0x" + uuid.uuid4().hex + uuid.uuid4().hex

    async def health_check(self) -> bool:
        return True

    async def get_stake_count(self, user_address: str) -> int:
        return len(self.stakes.get(user_address.lower(), []))

    async def get_stake_details(
        self, user_address: str, stake_index: int
    ) -> StakeDetails | None:
        user_stakes = self.stakes.get(user_address.lower(), [])
        if 0 <= stake_index < len(user_stakes):
            return user_stakes[stake_index]
        return None

    async def update_trade_value(
        self, user_address: str, stake_index: int, new_value: int
    ) -> TxResult:
        details = await self.get_stake_details(user_address, stake_index)
        if details is None or not self._succeeds():
            logger.warning(f"Simulated updateTradeValue failed for {user_address}[{stake_index}]")
            return TxResult(success=False)

        self.stakes[user_address.lower()][stake_index] = details.model_copy(
            update={"current_trade_value": new_value}
        )
        self.updates.append((user_address, stake_index, new_value))
        tx_hash = self._fake_tx_hash()
        logger.info(
            f"Simulated trade value update for {user_address}[{stake_index}] "
            f"to {new_value}: {tx_hash}"
        )
        return TxResult(success=True, tx_hash=tx_hash)

    async def exit_trade(self, user_address: str, stake_index: int, final_value: int) -> bool:
        details = await self.get_stake_details(user_address, stake_index)
        if details is None:
            logger.warning(f"Simulated exitTrade on unknown stake {user_address}[{stake_index}]")
            return False
        if not details.trade_active:
            logger.warning(f"Simulated exitTrade on closed trade {user_address}[{stake_index}]")
            return False
        if not self._succeeds():
            logger.warning(f"Simulated exitTrade failed for {user_address}[{stake_index}]")
            return False

        self.stakes[user_address.lower()][stake_index] = details.model_copy(
            update={"current_trade_value": final_value, "trade_active": False}
        )
        self.exits.append((user_address, stake_index, final_value))
        logger.info(
            f"Simulated trade exit for {user_address}[{stake_index}] with value {final_value}"
        )
        return True
