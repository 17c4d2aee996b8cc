"""
Configuration settings for the World Signal Tracker
"""

from typing import Any

from pydantic_settings import BaseSettings

from shared import constants


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Environment
    environment: str = constants.ENVIRONMENT
    log_level: str = constants.LOG_LEVEL

    # MongoDB Configuration
    mongodb_uri: str | None = None
    mongodb_timeout_ms: int = constants.MONGODB_TIMEOUT_MS
    influencers_db_name: str = constants.INFLUENCERS_DB_NAME
    backtesting_db_name: str = constants.BACKTESTING_DB_NAME
    signal_tracking_db_name: str = constants.SIGNAL_TRACKING_DB_NAME
    world_staking_db_name: str = constants.WORLD_STAKING_DB_NAME

    # Blockchain Configuration
    private_key: str | None = None
    rpc_url: str = constants.RPC_URL
    chain_id: int = constants.CHAIN_ID
    staking_contract_address: str | None = None
    rpc_timeout: int = constants.RPC_TIMEOUT

    # Simulation (in-memory staking contract, no transactions sent)
    simulation_enabled: bool = constants.SIMULATION_ENABLED

    # Valuation
    token_decimals: int = constants.TOKEN_DECIMALS

    # Rate limiting of contract calls
    trade_update_delay_seconds: float = constants.TRADE_UPDATE_DELAY_SECONDS
    subscriber_delay_seconds: float = constants.SUBSCRIBER_DELAY_SECONDS

    # Run lock
    run_lock_enabled: bool = constants.RUN_LOCK_ENABLED
    run_lock_name: str = constants.RUN_LOCK_NAME
    run_lock_timeout_seconds: int = constants.RUN_LOCK_TIMEOUT_SECONDS
    run_lock_heartbeat_seconds: int = constants.RUN_LOCK_HEARTBEAT_SECONDS

    # Diagnostics
    debug_database_state: bool = False
    prometheus_enabled: bool = constants.PROMETHEUS_ENABLED
    prometheus_port: int = constants.PROMETHEUS_PORT

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "allow"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)

        # Normalize the key so both "0xabc..." and "abc..." work
        if self.private_key:
            self.private_key = "0x" + self.private_key.removeprefix("0x")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment.lower() == constants.Environment.PRODUCTION.value

    @property
    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment.lower() == constants.Environment.DEVELOPMENT.value

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment"""
        return self.environment.lower() in (constants.Environment.TESTING.value, "test")

    def get_mongodb_connection_string(self) -> str:
        """Get MongoDB connection string"""
        return self.mongodb_uri or constants.get_mongodb_connection_string()

    def validate_required_settings(self) -> None:
        """Validate that required settings are present"""
        if not self.mongodb_uri:
            raise ValueError("MONGODB_URI is required")
        if not self.simulation_enabled:
            if not self.private_key:
                raise ValueError("PRIVATE_KEY is required unless simulation is enabled")
            if not self.staking_contract_address:
                raise ValueError(
                    "STAKING_CONTRACT_ADDRESS is required unless simulation is enabled"
                )


# Global settings instance
settings = Settings()
