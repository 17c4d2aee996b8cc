"""
World staking contract client (web3.py).

web3's HTTP provider is blocking; every call runs in a worker thread and is
awaited, so the processing loop stays strictly sequential.
"""

import asyncio
import logging
from typing import Any

from web3 import Web3

from contracts.stake import StakeDetails
from shared.constants import (
    CHAIN_ID,
    RPC_TIMEOUT,
    RPC_URL,
    WORLD_CHAIN_SEPOLIA_EXPLORER,
    WORLD_STAKING_ABI,
)
from signaltracker.chain.base import StakingContract, TxResult

logger = logging.getLogger(__name__)


class Web3StakingContract(StakingContract):
    """Reads and writes the staking contract with the operator account"""

    def __init__(
        self,
        private_key: str,
        contract_address: str,
        rpc_url: str = RPC_URL,
        chain_id: int = CHAIN_ID,
        timeout: int = RPC_TIMEOUT,
        w3: Web3 | None = None,
    ) -> None:
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.chain_id = chain_id
        self.timeout = timeout
        self.account = self.w3.eth.account.from_key(private_key)
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=WORLD_STAKING_ABI
        )
        logger.info(
            f"Blockchain client initialized with account {self.account.address} "
            f"on chain {chain_id}"
        )

    async def health_check(self) -> bool:
        try:
            block_number = await asyncio.to_thread(lambda: self.w3.eth.block_number)
        except Exception as e:
            logger.error(f"Blockchain health check failed: {e}")
            return False

        logger.info(f"Blockchain health check passed. Current block: {block_number}")
        return True

    async def get_stake_count(self, user_address: str) -> int:
        try:
            call = self.contract.functions.getStakeCount(
                Web3.to_checksum_address(user_address)
            )
            return int(await asyncio.to_thread(call.call))
        except Exception as e:
            logger.error(f"Error getting stake count for {user_address}: {e}")
            return 0

    async def get_stake_details(
        self, user_address: str, stake_index: int
    ) -> StakeDetails | None:
        try:
            call = self.contract.functions.getStakeDetails(
                Web3.to_checksum_address(user_address), stake_index
            )
            result = await asyncio.to_thread(call.call)
        except Exception as e:
            logger.error(f"Error getting stake details for {user_address}[{stake_index}]: {e}")
            return None

        return StakeDetails(
            amount=result[0],
            timestamp=result[1],
            trading_amount=result[2],
            current_trade_value=result[3],
            trade_active=result[4],
            claimable_rewards=result[5],
            active=result[6],
        )

    def _transact(self, function: Any) -> str:
        """Sign and send a contract call, wait for its receipt, return the hash"""
        txn = function.build_transaction(
            {
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
                "chainId": self.chain_id,
            }
        )
        signed = self.account.sign_transaction(txn)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.timeout)
        if receipt["status"] != 1:
            raise RuntimeError(f"Transaction {Web3.to_hex(tx_hash)} reverted")
        return Web3.to_hex(tx_hash)

    async def update_trade_value(
        self, user_address: str, stake_index: int, new_value: int
    ) -> TxResult:
        logger.info(f"Updating trade value for {user_address}[{stake_index}] to {new_value}")
        try:
            function = self.contract.functions.updateTradeValue(
                Web3.to_checksum_address(user_address), stake_index, new_value
            )
            tx_hash = await asyncio.to_thread(self._transact, function)
        except Exception as e:
            logger.error(f"Error updating trade value for {user_address}[{stake_index}]: {e}")
            return TxResult(success=False)

        logger.info(
            f"Trade value updated. Transaction: {WORLD_CHAIN_SEPOLIA_EXPLORER}/tx/{tx_hash}"
        )
        return TxResult(success=True, tx_hash=tx_hash)

    async def exit_trade(self, user_address: str, stake_index: int, final_value: int) -> bool:
        logger.info(
            f"Exiting trade for {user_address}[{stake_index}] with final value {final_value}"
        )
        try:
            function = self.contract.functions.exitTrade(
                Web3.to_checksum_address(user_address), stake_index, final_value
            )
            tx_hash = await asyncio.to_thread(self._transact, function)
        except Exception as e:
            logger.error(f"Error exiting trade for {user_address}[{stake_index}]: {e}")
            return False

        logger.info(f"Trade exited. Transaction: {WORLD_CHAIN_SEPOLIA_EXPLORER}/tx/{tx_hash}")
        return True
