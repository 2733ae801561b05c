"""Repositories for published stream state, stats history and the call log."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from shared.models.api_call import ApiCallRecord
from shared.models.stats import CurrentStats, StatsSnapshot
from shared.repositories.documents import DocumentStore

CURRENT_COLLECTION = "api.current"
STATS_COLLECTION = "stats"
API_CALLS_COLLECTION = "api.calls"
EVENTLIST_COLLECTION = "eventlist"


class CurrentStatsRepository:
    """``api.current``: one ``{key, value}`` document per CurrentStats field."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def save(self, key: str, value: Any) -> None:
        await self.store.update(CURRENT_COLLECTION, {"key": key}, {"value": value})

    async def load_into(self, stats: CurrentStats) -> CurrentStats:
        """Copy persisted values onto *stats*, ignoring unknown keys."""
        for doc in await self.store.find(CURRENT_COLLECTION):
            key = doc.get("key")
            if key and hasattr(stats, key) and doc.get("value") is not None:
                setattr(stats, key, doc["value"])
        return stats


class StatsRepository:
    """Append-only stream stats history."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def save(self, snapshot: StatsSnapshot) -> None:
        await self.store.insert(STATS_COLLECTION, asdict(snapshot))


class ApiCallLogRepository:
    """Append-only API call log. Observability only, never read by the poller."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def record(self, entry: ApiCallRecord) -> None:
        await self.store.insert(API_CALLS_COLLECTION, asdict(entry))


class EventListRepository:
    """Overlay event list (``follow`` entries shown on stream)."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def add(self, event_type: str, username: str, timestamp: float) -> None:
        await self.store.insert(
            EVENTLIST_COLLECTION,
            {"type": event_type, "username": username, "timestamp": timestamp},
        )
