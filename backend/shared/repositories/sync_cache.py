"""Repository for the sync engine's persisted cache values.

Survives restarts: raw (template) status, last game, channel id, online flag,
online/offline timestamps, the game-id → name map and the current hosts list.
"""

from __future__ import annotations

from shared.repositories.documents import DocumentStore

HOSTS_COLLECTION = "cache.hosts"


class SyncCacheRepository:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # --- title / game ---

    async def raw_status(self) -> str:
        return await self.store.get("cache.raw_status") or ""

    async def set_raw_status(self, value: str) -> str:
        await self.store.set("cache.raw_status", value)
        return value

    async def game(self) -> str:
        return await self.store.get("cache.game") or ""

    async def set_game(self, value: str) -> str:
        await self.store.set("cache.game", value)
        return value

    # --- channel ---

    async def channel_id(self) -> str | None:
        value = await self.store.get("cache.channel_id")
        return str(value) if value else None

    async def set_channel_id(self, value: str) -> None:
        await self.store.set("cache.channel_id", value)

    # --- online state ---

    async def is_online(self) -> bool:
        return bool(await self.store.get("cache.is_online"))

    async def set_online(self, value: bool) -> None:
        await self.store.set("cache.is_online", value)

    async def when(self) -> dict[str, str | None]:
        """Return ``{"online": iso | None, "offline": iso | None}``."""
        value = await self.store.get("cache.when") or {}
        return {"online": value.get("online"), "offline": value.get("offline")}

    async def set_when(self, **changes: str | None) -> None:
        """Update only the given keys of the online/offline timestamps."""
        current = await self.when()
        current.update(changes)
        await self.store.set("cache.when", current)

    # --- game names ---

    async def game_names(self) -> dict[str, str]:
        return dict(await self.store.get("cache.game_names") or {})

    async def save_game_names(self, names: dict[str, str]) -> None:
        await self.store.set("cache.game_names", names)

    # --- hosts ---

    async def add_host(self, username: str) -> None:
        await self.store.update(HOSTS_COLLECTION, {"username": username}, {"username": username})

    async def hosts(self) -> list[str]:
        return [d["username"] for d in await self.store.find(HOSTS_COLLECTION)]

    async def clear_hosts(self) -> None:
        await self.store.remove(HOSTS_COLLECTION, {})
