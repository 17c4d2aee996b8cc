"""Staking contract adapters"""

from signaltracker.chain.base import StakingContract, TxResult
from signaltracker.chain.simulator import SimulatedStakingContract

__all__ = ["StakingContract", "TxResult", "SimulatedStakingContract"]
