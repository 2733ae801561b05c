"""Shared repository layer for the sync service."""

from .documents import DocumentStore, deep_merge
from .stats import (
    ApiCallLogRepository,
    CurrentStatsRepository,
    EventListRepository,
    StatsRepository,
)
from .sync_cache import SyncCacheRepository
from .users import UserRepository
from .variables import CustomVariableRepository

__all__ = [
    "ApiCallLogRepository",
    "CurrentStatsRepository",
    "CustomVariableRepository",
    "DocumentStore",
    "EventListRepository",
    "StatsRepository",
    "SyncCacheRepository",
    "UserRepository",
    "deep_merge",
]
