"""Game id → name lookups, memoized and persisted across restarts."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from streamsync.core.errors import LookupMiss, SyncError

if TYPE_CHECKING:
    from streamsync.core.context import SyncContext
    from streamsync.services.helix import HelixClient

LOGGER = logging.getLogger("Sync.GameNames")


class GameNameCache:
    """Never evicts: the set of games a channel plays stays small."""

    def __init__(self, ctx: SyncContext, api: HelixClient) -> None:
        self.ctx = ctx
        self.api = api
        self._names: dict[str, str] | None = None
        self._load_lock = asyncio.Lock()

    async def _loaded(self) -> dict[str, str]:
        if self._names is None:
            async with self._load_lock:
                if self._names is None:
                    self._names = await self.ctx.cache.game_names()
        return self._names

    async def resolve(self, game_id: str | int | None) -> str:
        """Name for *game_id*; falls back to the current game when the lookup fails."""
        game_id = str(game_id or "").strip()
        if not game_id:
            return ""

        names = await self._loaded()
        if game_id in names:
            return names[game_id]

        try:
            name = await self._fetch(game_id)
        except SyncError as e:
            LOGGER.warning(
                f"Couldn't find name of game for gid {game_id} - fallback to {self.ctx.stats.game} ({e})"
            )
            return self.ctx.stats.game

        names[game_id] = name
        LOGGER.debug(f"Saving id {game_id} -> {name} to cache")
        await self.ctx.cache.save_game_names(names)
        return name

    async def _fetch(self, game_id: str) -> str:
        game = await self.api.get_game(game_id)
        if not game or not game.get("name"):
            raise LookupMiss(f"no game with id {game_id}")
        return game["name"]
