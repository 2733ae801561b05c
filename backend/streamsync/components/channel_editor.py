"""Manual title/game changes requested from chat or the dashboard."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from streamsync.core.errors import SyncError

if TYPE_CHECKING:
    from streamsync.components.titles import TitleTemplateEngine
    from streamsync.core.context import SyncContext
    from streamsync.services.helix import HelixClient

LOGGER = logging.getLogger("Sync.ChannelEditor")


class ChannelEditor:
    def __init__(self, ctx: SyncContext, api: HelixClient, titles: TitleTemplateEngine) -> None:
        self.ctx = ctx
        self.api = api
        self.titles = titles

    async def _reply(self, key: str, placeholder: str, value: str, sender: str | None) -> None:
        message = self.ctx.translate(key).replace(placeholder, value)
        if self.ctx.chat is not None:
            await self.ctx.chat.send_message(message, sender)
        else:
            LOGGER.info(message)

    async def set_title_and_game(
        self, title: str | None = None, game: str | None = None, sender: str | None = None
    ) -> bool:
        """Push a new title and/or game to the platform.

        The new raw title is cached before rendering so the drift check already
        expects it. Any part the platform does not echo back is reported as
        failed and its cached value is restored.
        """
        channel_id = await self.ctx.channel.wait()
        cache = self.ctx.cache
        stats = self.ctx.stats

        previous_raw = await cache.raw_status()
        previous_game = await cache.game()

        raw = await cache.set_raw_status(title) if title is not None else previous_raw
        status = await self.titles.render(raw)

        game_id = None
        if game is not None:
            try:
                found = await self.api.get_game_by_name(game)
            except SyncError as e:
                LOGGER.error(f"Game lookup for '{game}' failed: {e}")
                found = None
            if found:
                game_id = str(found["id"])
                game = found.get("name") or game
                await cache.set_game(game)
            else:
                await self._reply("game.change.failed", "$game", stats.game, sender)
                game = None

        if title is None and game is None:
            return False

        try:
            channel = await self.api.update_channel(
                channel_id, title=status if title is not None else None, game_id=game_id
            )
        except SyncError as e:
            LOGGER.error(f"Channel update failed: {e}")
            channel = None
        if channel is None:
            await cache.set_raw_status(previous_raw)
            await cache.set_game(previous_game)
            if game is not None:
                await self._reply("game.change.failed", "$game", stats.game, sender)
            if title is not None:
                await self._reply("title.change.failed", "$title", stats.status, sender)
            return False

        ok = True
        if game is not None:
            echoed_game = (channel.get("game_name") or "").strip()
            if echoed_game == game.strip():
                await self._reply("game.change.success", "$game", echoed_game, sender)
                self.ctx.events.fire("game-changed", {"oldGame": stats.game, "game": echoed_game})
                stats.game = echoed_game
                await self.ctx.current.save("game", echoed_game)
            else:
                ok = False
                await cache.set_game(previous_game)
                await self._reply("game.change.failed", "$game", stats.game, sender)

        if title is not None:
            echoed_title = channel.get("title") or ""
            if echoed_title.strip() == status.strip():
                await self._reply("title.change.success", "$title", echoed_title, sender)
                stats.raw_status = raw
                stats.status = echoed_title
                await self.ctx.current.save("status", echoed_title)
            else:
                ok = False
                await cache.set_raw_status(previous_raw)
                await self._reply("title.change.failed", "$title", stats.status, sender)

        self.ctx.changed_manually = True
        return ok

    async def suggest_games(self, query: str) -> list[str] | None:
        """Category names matching *query*; ``None`` when the lookup failed."""
        try:
            games = await self.api.search_games(query)
        except SyncError as e:
            LOGGER.error(f"Game search for '{query}' failed: {e}")
            return None
        return [g["name"] for g in games if g.get("name")]
