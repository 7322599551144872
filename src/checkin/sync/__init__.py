"""Sync module for collector delivery and offline queue management."""

from checkin.sync.coordinator import (
    DispatchOutcome,
    DrainReport,
    OutcomeStatus,
    Stats,
    StatsSnapshot,
    SyncCoordinator,
)
from checkin.sync.delivery import DeliveryClient, DeliveryResult
from checkin.sync.queue import PendingQueue
from checkin.sync.store import DurableStore, JsonFileStore, MemoryStore, SqliteStore, open_store

__all__ = [
    "DeliveryClient",
    "DeliveryResult",
    "DispatchOutcome",
    "DrainReport",
    "DurableStore",
    "JsonFileStore",
    "MemoryStore",
    "OutcomeStatus",
    "PendingQueue",
    "SqliteStore",
    "Stats",
    "StatsSnapshot",
    "SyncCoordinator",
    "open_store",
]
