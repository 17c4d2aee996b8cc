"""
World Signal Tracker - Centralized Constants and Configuration

This module provides a centralized location for the constants and
environment-driven defaults used throughout the signal tracker.

All modules should import constants from this file rather than defining their own.
"""

import os
from enum import Enum

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================


class Environment(str, Enum):
    """Application environments"""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class RunMode(str, Enum):
    """Which flows a single invocation executes"""

    SIGNALS = "signals"
    EXITS = "exits"
    ALL = "all"


# =============================================================================
# APPLICATION CONSTANTS
# =============================================================================

APP_NAME = "World Signal Tracker"
APP_VERSION = "0.1.0"
APP_DESCRIPTION = "Reconciles backtested signal P&L into on-chain stake trade values"
SERVICE_NAME = "signaltracker"

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv(
    "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


# =============================================================================
# SIGNAL WINDOWS AND VALUATION
# =============================================================================

# Signals count for a subscriber during the first N days after subscribing
SUBSCRIPTION_WINDOW_DAYS = int(os.getenv("SUBSCRIPTION_WINDOW_DAYS", "7"))

# Share of a stake allocated to trading, in percent
TRADING_ALLOCATION_PCT = int(os.getenv("TRADING_ALLOCATION_PCT", "2"))

# Decimals of the staked token (wei for ETH-like tokens)
TOKEN_DECIMALS = int(os.getenv("TOKEN_DECIMALS", "18"))

ZERO_PNL = "0%"


# =============================================================================
# RATE LIMITING OF EXTERNAL CALLS
# =============================================================================

TRADE_UPDATE_DELAY_SECONDS = float(os.getenv("TRADE_UPDATE_DELAY_SECONDS", "1.0"))
SUBSCRIBER_DELAY_SECONDS = float(os.getenv("SUBSCRIBER_DELAY_SECONDS", "2.0"))


# =============================================================================
# DATABASE CONFIGURATION
# =============================================================================

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
MONGODB_TIMEOUT_MS = int(os.getenv("MONGODB_TIMEOUT_MS", "5000"))

INFLUENCERS_DB_NAME = os.getenv("INFLUENCERS_DB_NAME", "influencers_db")
BACKTESTING_DB_NAME = os.getenv("BACKTESTING_DB_NAME", "backtesting_db")
SIGNAL_TRACKING_DB_NAME = os.getenv("SIGNAL_TRACKING_DB_NAME", "signal_tracking_db")
WORLD_STAKING_DB_NAME = os.getenv("WORLD_STAKING_DB_NAME", "world-staking")

# Collections
INFLUENCERS_COLLECTION = "influencers"
BACKTESTING_COLLECTION = "backtesting_results_with_reasoning"
PROCESSED_SIGNALS_COLLECTION = "processed_signals"
USER_SIGNAL_SUMMARY_COLLECTION = "user_signal_summary"
TRADE_VALUE_UPDATES_COLLECTION = "trade_value_updates"
STAKES_COLLECTION = "stakes"
RUN_LOCKS_COLLECTION = "run_locks"

# Backtesting document field names
SIGNAL_ACCOUNT_FIELD = "Twitter Account"
SIGNAL_DATE_FIELD = "Signal Generation Date"
SIGNAL_PNL_FIELD = "Final P&L"
SIGNAL_BACKTEST_DONE_FIELD = "backtesting_done"

# MongoDB duplicate key error
DUPLICATE_KEY_ERROR_CODE = 11000


# =============================================================================
# RUN LOCK CONFIGURATION
# =============================================================================

RUN_LOCK_NAME = os.getenv("RUN_LOCK_NAME", "signal-tracker-run")
RUN_LOCK_ENABLED = os.getenv("RUN_LOCK_ENABLED", "true").lower() == "true"
RUN_LOCK_TIMEOUT_SECONDS = int(os.getenv("RUN_LOCK_TIMEOUT_SECONDS", "1800"))
RUN_LOCK_HEARTBEAT_SECONDS = int(os.getenv("RUN_LOCK_HEARTBEAT_SECONDS", "60"))


# =============================================================================
# BLOCKCHAIN CONFIGURATION
# =============================================================================

# World Chain Sepolia
WORLD_CHAIN_SEPOLIA_ID = 4801
WORLD_CHAIN_SEPOLIA_RPC_URL = "https://worldchain-sepolia.g.alchemy.com/public"
WORLD_CHAIN_SEPOLIA_EXPLORER = "https://sepolia.worldscan.io"

CHAIN_ID = int(os.getenv("CHAIN_ID", str(WORLD_CHAIN_SEPOLIA_ID)))
RPC_URL = os.getenv("RPC_URL", WORLD_CHAIN_SEPOLIA_RPC_URL)
RPC_TIMEOUT = int(os.getenv("RPC_TIMEOUT", "30"))  # seconds

SIMULATION_ENABLED = os.getenv("SIMULATION_ENABLED", "false").lower() == "true"
SIMULATION_SUCCESS_RATE = float(os.getenv("SIMULATION_SUCCESS_RATE", "1.0"))

WORLD_STAKING_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "user", "type": "address"}],
        "name": "getStakeCount",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "user", "type": "address"},
            {"internalType": "uint256", "name": "stakeIndex", "type": "uint256"},
        ],
        "name": "getStakeDetails",
        "outputs": [
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            {"internalType": "uint256", "name": "timestamp", "type": "uint256"},
            {"internalType": "uint256", "name": "tradingAmount", "type": "uint256"},
            {"internalType": "uint256", "name": "currentTradeValue", "type": "uint256"},
            {"internalType": "bool", "name": "tradeActive", "type": "bool"},
            {"internalType": "uint256", "name": "claimableRewards", "type": "uint256"},
            {"internalType": "bool", "name": "active", "type": "bool"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "user", "type": "address"},
            {"internalType": "uint256", "name": "stakeIndex", "type": "uint256"},
            {"internalType": "uint256", "name": "newValue", "type": "uint256"},
        ],
        "name": "updateTradeValue",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "user", "type": "address"},
            {"internalType": "uint256", "name": "stakeIndex", "type": "uint256"},
            {"internalType": "uint256", "name": "finalValue", "type": "uint256"},
        ],
        "name": "exitTrade",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


# =============================================================================
# MONITORING
# =============================================================================

PROMETHEUS_ENABLED = os.getenv("PROMETHEUS_ENABLED", "false").lower() == "true"
PROMETHEUS_PORT = int(os.getenv("PROMETHEUS_PORT", "9090"))


def get_mongodb_connection_string() -> str:
    """Get MongoDB connection string from the environment"""
    return os.getenv("MONGODB_URI", MONGODB_URI)
