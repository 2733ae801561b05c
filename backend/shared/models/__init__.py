"""Shared data models for the sync service."""

from .api_call import ApiCallRecord
from .stats import CurrentStats, StatsSnapshot
from .user import UserRecord

__all__ = [
    "ApiCallRecord",
    "CurrentStats",
    "StatsSnapshot",
    "UserRecord",
]
