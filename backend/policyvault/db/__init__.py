"""Policyvault persistence layer — SQLite record store."""

from policyvault.db.models import (
    Account,
    AggregatedPolicy,
    PolicyCarrier,
    PolicyCategory,
    PolicyInfo,
    ScheduledMessage,
    User,
)
from policyvault.db.repositories import (
    COLLECTION_COLUMNS,
    PolicyRepo,
    RecordStore,
    ScheduledMessageRepo,
)
from policyvault.db.sqlite import SQLiteDB

__all__ = [
    "SQLiteDB",
    "User",
    "Account",
    "PolicyCategory",
    "PolicyCarrier",
    "PolicyInfo",
    "AggregatedPolicy",
    "ScheduledMessage",
    "COLLECTION_COLUMNS",
    "RecordStore",
    "PolicyRepo",
    "ScheduledMessageRepo",
]
