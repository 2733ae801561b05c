"""Repository for the ``users`` collection (user directory)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from shared.cache import _MISSING, AsyncTTLCache
from shared.models.user import UserRecord
from shared.repositories.documents import DocumentStore

logger = logging.getLogger(__name__)

COLLECTION = "users"


class UserRepository:
    """Username-keyed user records with an external (platform) id index.

    ``get`` always returns a record: unknown users come back with defaults,
    exactly as the chat side sees a first-time chatter.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        on_change: Callable[[str, dict[str, Any]], None] | None = None,
        ttl: float = 30.0,
    ) -> None:
        self.store = store
        self._on_change = on_change
        self._cache = AsyncTTLCache(maxsize=512, ttl=ttl)

    async def get(self, username: str) -> UserRecord:
        username = username.lower()
        cache_key = f"user:{username}"
        cached = self._cache.get(cache_key)
        if cached is not _MISSING:
            return cached

        try:
            doc = await self.store.find_one(COLLECTION, {"username": username})
        except asyncio.CancelledError:
            raise
        except Exception as e:
            stale = self._cache.get_stale(cache_key)
            if stale is _MISSING:
                raise
            logger.warning(f"Returning stale user record for {username} ({type(e).__name__})")
            return stale

        record = UserRecord.from_document(username, doc)
        self._cache.set(cache_key, record)
        return record

    async def find_by_external_id(self, external_id: str) -> UserRecord | None:
        doc = await self.store.find_one(COLLECTION, {"id": str(external_id)})
        if not doc or not doc.get("username"):
            return None
        return UserRecord.from_document(doc["username"], doc)

    async def save_external_id(self, username: str, external_id: str) -> None:
        username = username.lower()
        await self.store.update(COLLECTION, {"username": username}, {"id": str(external_id)})
        self._cache.invalidate(f"user:{username}")

    async def set(self, username: str, patch: dict[str, Any], emit_change: bool = False) -> None:
        """Deep-merge *patch* into the user's document.

        With *emit_change* the change listener is notified after the write.
        """
        username = username.lower()
        await self.store.update(COLLECTION, {"username": username}, patch)
        self._cache.invalidate(f"user:{username}")
        if emit_change and self._on_change is not None:
            self._on_change(username, patch)
