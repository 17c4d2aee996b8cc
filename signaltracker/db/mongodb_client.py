"""
MongoDB Client for signal tracking.

Provides async access to the four databases the tracker works with:
influencers, backtesting results, signal tracking (ledger, summaries, audit)
and world-staking. Documents are decoded into contracts at this boundary.
"""

import logging
from datetime import datetime
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import BulkWriteError

from contracts.influencer import Influencer
from contracts.stake import UserStakes
from contracts.tracking import (
    ProcessedSignalRecord,
    UserSignalSummary,
    UserTradeValueUpdate,
)
from shared.constants import (
    BACKTESTING_COLLECTION,
    DUPLICATE_KEY_ERROR_CODE,
    INFLUENCERS_COLLECTION,
    PROCESSED_SIGNALS_COLLECTION,
    RUN_LOCKS_COLLECTION,
    SIGNAL_ACCOUNT_FIELD,
    SIGNAL_BACKTEST_DONE_FIELD,
    SIGNAL_DATE_FIELD,
    SIGNAL_PNL_FIELD,
    STAKES_COLLECTION,
    TRADE_VALUE_UPDATES_COLLECTION,
    USER_SIGNAL_SUMMARY_COLLECTION,
)
from signaltracker.db.base import TrackingStore, decode_documents

logger = logging.getLogger(__name__)


class MongoDBClient(TrackingStore):
    """MongoDB implementation of the tracking store."""

    def __init__(
        self,
        connection_string: str,
        influencers_db_name: str = "influencers_db",
        backtesting_db_name: str = "backtesting_db",
        signal_tracking_db_name: str = "signal_tracking_db",
        world_staking_db_name: str = "world-staking",
        timeout_ms: int = 5000,
    ):
        """
        Initialize MongoDB client.

        Args:
            connection_string: MongoDB connection URI
            influencers_db_name: Database holding influencers and subscribers
            backtesting_db_name: Database holding backtesting results
            signal_tracking_db_name: Database holding the ledger and audit rows
            world_staking_db_name: Database holding stake records
            timeout_ms: Server selection timeout in milliseconds
        """
        self.connection_string = connection_string
        self.influencers_db_name = influencers_db_name
        self.backtesting_db_name = backtesting_db_name
        self.signal_tracking_db_name = signal_tracking_db_name
        self.world_staking_db_name = world_staking_db_name
        self.timeout_ms = timeout_ms
        self.client: Any | None = None  # AsyncIOMotorClient
        self.connected = False

    async def connect(self) -> None:
        """Establish MongoDB connection and make sure ledger indexes exist."""
        if self.client is not None:
            return

        try:
            logger.info("Connecting to MongoDB...")
            self.client = AsyncIOMotorClient(
                self.connection_string,
                serverSelectionTimeoutMS=self.timeout_ms,
                tz_aware=True,
            )
            await self.client.admin.command("ping")
            await self.ensure_indexes()
            self.connected = True
            logger.info("Successfully connected to MongoDB")
        except Exception as e:
            self.connected = False
            self.client = None
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client is not None:
            self.client.close()
            self.client = None
            self.connected = False
            logger.info("Disconnected from MongoDB")

    async def health_check(self) -> bool:
        """Ping the server."""
        if self.client is None:
            return False
        try:
            await self.client.admin.command("ping")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def ensure_indexes(self) -> None:
        """Unique indexes that back the ledger's at-most-once guarantee."""
        await self._processed_signals.create_index(
            [("subscriberAddress", ASCENDING), ("signalId", ASCENDING)],
            unique=True,
            name="subscriber_signal_unique",
        )
        await self._user_summaries.create_index(
            "subscriberAddress", unique=True, name="subscriber_unique"
        )
        await self._trade_value_updates.create_index(
            [
                ("subscriberAddress", ASCENDING),
                ("stakeIndex", ASCENDING),
                ("updatedAt", DESCENDING),
            ],
            name="subscriber_stake_updated",
        )

    # =========================================================================
    # Collections
    # =========================================================================

    def _database(self, name: str) -> Any:
        if self.client is None:
            raise RuntimeError(f"Not connected to {name} database")
        return self.client[name]

    @property
    def _influencers(self) -> Any:
        return self._database(self.influencers_db_name)[INFLUENCERS_COLLECTION]

    @property
    def _backtesting(self) -> Any:
        return self._database(self.backtesting_db_name)[BACKTESTING_COLLECTION]

    @property
    def _processed_signals(self) -> Any:
        return self._database(self.signal_tracking_db_name)[PROCESSED_SIGNALS_COLLECTION]

    @property
    def _user_summaries(self) -> Any:
        return self._database(self.signal_tracking_db_name)[
            USER_SIGNAL_SUMMARY_COLLECTION
        ]

    @property
    def _trade_value_updates(self) -> Any:
        return self._database(self.signal_tracking_db_name)[
            TRADE_VALUE_UPDATES_COLLECTION
        ]

    @property
    def _stakes(self) -> Any:
        return self._database(self.world_staking_db_name)[STAKES_COLLECTION]

    def get_run_locks_collection(self) -> Any:
        """Collection backing the run lock."""
        return self._database(self.signal_tracking_db_name)[RUN_LOCKS_COLLECTION]

    # =========================================================================
    # Source data
    # =========================================================================

    async def get_all_influencers(self) -> list[Influencer]:
        """Retrieve all influencers with their subscribers."""
        try:
            docs = await self._influencers.find({}).to_list(length=None)
        except Exception as e:
            logger.error(f"Error retrieving influencers: {e}")
            raise

        influencers, rejected = decode_documents(Influencer, docs, "influencer")
        logger.info(
            f"Retrieved {len(influencers)} influencers from database"
            + (f" ({rejected} rejected)" if rejected else "")
        )
        return influencers

    async def find_signal_documents(
        self, account: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Backtested signals of an account generated within [start, end]."""
        query = {
            SIGNAL_ACCOUNT_FIELD: account,
            SIGNAL_DATE_FIELD: {"$gte": start, "$lte": end},
            SIGNAL_BACKTEST_DONE_FIELD: True,
            SIGNAL_PNL_FIELD: {"$exists": True, "$ne": ""},
        }
        try:
            docs = await self._backtesting.find(query).to_list(length=None)
        except Exception as e:
            logger.error(f"Error retrieving signals for {account}: {e}")
            raise

        logger.debug(
            f"Found {len(docs)} signals for {account} between "
            f"{start.isoformat()} and {end.isoformat()}"
        )
        return docs

    async def get_all_user_stakes(self) -> list[UserStakes]:
        """Retrieve every wallet's stake records."""
        try:
            docs = await self._stakes.find({}).to_list(length=None)
        except Exception as e:
            logger.error(f"Error retrieving user stakes: {e}")
            raise

        user_stakes, rejected = decode_documents(UserStakes, docs, "stakes")
        logger.info(
            f"Retrieved {len(user_stakes)} users with stakes"
            + (f" ({rejected} rejected)" if rejected else "")
        )
        return user_stakes

    # =========================================================================
    # Processed-signal ledger
    # =========================================================================

    async def get_processed_signal_ids(self, subscriber_address: str) -> set[str]:
        """Signal ids already counted for a subscriber."""
        cursor = self._processed_signals.find(
            {"subscriberAddress": subscriber_address}, {"signalId": 1}
        )
        docs = await cursor.to_list(length=None)
        signal_ids = {str(doc["signalId"]) for doc in docs}
        logger.debug(
            f"Ledger holds {len(signal_ids)} processed signals for {subscriber_address}"
        )
        return signal_ids

    async def insert_processed_signals(
        self, records: list[ProcessedSignalRecord]
    ) -> list[ProcessedSignalRecord]:
        """Insert ledger rows; rows violating the unique index are skipped."""
        if not records:
            return []

        docs = [record.model_dump(by_alias=True) for record in records]
        try:
            result = await self._processed_signals.insert_many(docs, ordered=False)
        except BulkWriteError as e:
            write_errors = e.details.get("writeErrors", [])
            unexpected = [
                err for err in write_errors if err.get("code") != DUPLICATE_KEY_ERROR_CODE
            ]
            if unexpected:
                logger.error(f"Error inserting processed signals: {unexpected[0]}")
                raise

            duplicate_indexes = {err["index"] for err in write_errors}
            inserted = [r for i, r in enumerate(records) if i not in duplicate_indexes]
            logger.warning(
                f"Skipped {len(duplicate_indexes)} already-recorded signals for "
                f"{records[0].subscriber_address}"
            )
            return inserted

        logger.info(
            f"Inserted {len(result.inserted_ids)} processed signal records for "
            f"{records[0].subscriber_address}"
        )
        return list(records)

    async def increment_user_summary(
        self,
        subscriber_address: str,
        signals_processed: int,
        pnl_percentage: float,
        last_processed_at: datetime,
        last_signal_date: datetime,
    ) -> None:
        """Upsert the running summary by increment."""
        result = await self._user_summaries.update_one(
            {"subscriberAddress": subscriber_address},
            {
                "$inc": {
                    "totalSignalsProcessed": signals_processed,
                    "totalPnLPercentage": pnl_percentage,
                },
                "$set": {
                    "lastProcessedAt": last_processed_at,
                    "lastSignalDate": last_signal_date,
                },
            },
            upsert=True,
        )
        logger.debug(
            f"User summary for {subscriber_address} "
            f"{'created' if result.upserted_id else 'updated'}"
        )

    async def get_user_signal_summary(
        self, subscriber_address: str
    ) -> UserSignalSummary | None:
        """Running summary of a subscriber, if any."""
        doc = await self._user_summaries.find_one({"subscriberAddress": subscriber_address})
        if doc is None:
            return None
        return UserSignalSummary.model_validate(doc)

    async def count_processed_signals(self, subscriber_address: str | None = None) -> int:
        query = {"subscriberAddress": subscriber_address} if subscriber_address else {}
        return await self._processed_signals.count_documents(query)

    async def find_duplicate_processed_signals(self, limit: int = 5) -> list[dict[str, Any]]:
        pipeline = [
            {
                "$group": {
                    "_id": {
                        "subscriberAddress": "$subscriberAddress",
                        "signalId": "$signalId",
                    },
                    "count": {"$sum": 1},
                }
            },
            {"$match": {"count": {"$gt": 1}}},
            {"$limit": limit},
        ]
        docs = await self._processed_signals.aggregate(pipeline).to_list(length=limit)
        return [{**doc["_id"], "count": doc["count"]} for doc in docs]

    # =========================================================================
    # Trade value audit
    # =========================================================================

    async def store_trade_value_update(self, update: UserTradeValueUpdate) -> None:
        """Append an audit row."""
        try:
            await self._trade_value_updates.insert_one(update.model_dump(by_alias=True))
            logger.info(
                f"Stored trade value update for "
                f"{update.subscriber_address}[{update.stake_index}]"
            )
        except Exception as e:
            logger.error(f"Error storing trade value update: {e}")
            raise

    async def get_latest_trade_value(
        self, subscriber_address: str, stake_index: int
    ) -> UserTradeValueUpdate | None:
        """Most recent audit row for a stake."""
        try:
            doc = await self._trade_value_updates.find_one(
                {"subscriberAddress": subscriber_address, "stakeIndex": stake_index},
                sort=[("updatedAt", DESCENDING)],
            )
        except Exception as e:
            logger.error(f"Error getting latest trade value: {e}")
            return None

        return UserTradeValueUpdate.model_validate(doc) if doc else None
