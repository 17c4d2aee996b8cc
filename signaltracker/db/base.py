"""
Storage interface for the signal tracker.

Every component receives a TrackingStore explicitly; the run that creates the
store owns its connect/disconnect lifecycle.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from contracts.influencer import Influencer
from contracts.stake import UserStakes
from contracts.tracking import (
    ProcessedSignalRecord,
    UserSignalSummary,
    UserTradeValueUpdate,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def decode_documents(
    model: type[ModelT], docs: Iterable[dict[str, Any]], kind: str
) -> tuple[list[ModelT], int]:
    """Validate raw documents into models, skipping ones that fail.

    Returns:
        (decoded models, number of rejected documents)
    """
    decoded: list[ModelT] = []
    rejected = 0
    for doc in docs:
        try:
            decoded.append(model.model_validate(doc))
        except ValidationError as e:
            rejected += 1
            logger.warning(
                f"Quarantined {kind} document {doc.get('_id')}: "
                f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}"
            )
    return decoded, rejected


class TrackingStore(ABC):
    """Read/write operations per collection used by the pipeline"""

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def disconnect(self) -> None: ...

    @abstractmethod
    async def health_check(self) -> bool: ...

    # =========================================================================
    # Source data (read only)
    # =========================================================================

    @abstractmethod
    async def get_all_influencers(self) -> list[Influencer]: ...

    @abstractmethod
    async def find_signal_documents(
        self, account: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Backtested signal documents of an account generated in [start, end]
        with backtesting done and a non-empty Final P&L."""

    @abstractmethod
    async def get_all_user_stakes(self) -> list[UserStakes]: ...

    # =========================================================================
    # Processed-signal ledger
    # =========================================================================

    @abstractmethod
    async def get_processed_signal_ids(self, subscriber_address: str) -> set[str]: ...

    @abstractmethod
    async def insert_processed_signals(
        self, records: list[ProcessedSignalRecord]
    ) -> list[ProcessedSignalRecord]:
        """Insert ledger rows, skipping (subscriber, signal) pairs already present.

        Returns:
            The records that were actually inserted
        """

    @abstractmethod
    async def increment_user_summary(
        self,
        subscriber_address: str,
        signals_processed: int,
        pnl_percentage: float,
        last_processed_at: datetime,
        last_signal_date: datetime,
    ) -> None: ...

    @abstractmethod
    async def get_user_signal_summary(
        self, subscriber_address: str
    ) -> UserSignalSummary | None: ...

    @abstractmethod
    async def count_processed_signals(self, subscriber_address: str | None = None) -> int: ...

    @abstractmethod
    async def find_duplicate_processed_signals(self, limit: int = 5) -> list[dict[str, Any]]:
        """(subscriberAddress, signalId) pairs recorded more than once"""

    # =========================================================================
    # Trade value audit
    # =========================================================================

    @abstractmethod
    async def store_trade_value_update(self, update: UserTradeValueUpdate) -> None: ...

    @abstractmethod
    async def get_latest_trade_value(
        self, subscriber_address: str, stake_index: int
    ) -> UserTradeValueUpdate | None: ...

    # =========================================================================
    # Diagnostics
    # =========================================================================

    async def debug_database_state(self) -> None:
        """Log ledger size and any uniqueness violations"""
        try:
            total = await self.count_processed_signals()
            duplicates = await self.find_duplicate_processed_signals()
        except Exception as e:
            logger.error(f"Error during database state debug: {e}")
            return

        logger.info(f"Total processed signals in database: {total}")
        if duplicates:
            logger.warning(
                f"Found {len(duplicates)} duplicate signal-subscriber combinations"
            )
            for dup in duplicates:
                logger.warning(
                    f"  - Subscriber: {dup['subscriberAddress']}, "
                    f"Signal: {dup['signalId']}, Count: {dup['count']}"
                )
        else:
            logger.info("No duplicate signal-subscriber combinations found")

    async def debug_user_signal_summary(
        self, subscriber_address: str, stake_index: int = 0
    ) -> None:
        """Log the running summary of one subscriber and the last value pushed
        for one of their stakes"""
        try:
            summary = await self.get_user_signal_summary(subscriber_address)
            processed = await self.count_processed_signals(subscriber_address)
            latest = await self.get_latest_trade_value(subscriber_address, stake_index)
        except Exception as e:
            logger.error(f"Error during user signal summary debug: {e}")
            return

        if summary is None:
            logger.info(f"No user signal summary found for {subscriber_address}")
        else:
            logger.info(
                f"Summary for {subscriber_address}: "
                f"signals={summary.total_signals_processed}, "
                f"total P&L={summary.total_pnl_percentage}%, "
                f"last processed={summary.last_processed_at}, "
                f"last signal={summary.last_signal_date}"
            )
        logger.info(f"Processed signals for {subscriber_address}: {processed}")

        if latest is not None:
            logger.info(
                f"Latest {latest.update_type} value for stake {stake_index}: "
                f"{latest.new_trade_value} ({latest.pnl_percentage}) at {latest.updated_at}"
            )
