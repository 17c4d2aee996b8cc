"""Storage layer for signal tracking."""

from signaltracker.db.base import TrackingStore
from signaltracker.db.mongodb_client import MongoDBClient

__all__ = ["TrackingStore", "MongoDBClient"]
