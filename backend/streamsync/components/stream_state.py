"""Online/offline stream state with confirmation retries."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from shared.models.stats import StatsSnapshot
from streamsync.core.context import RetryCounter, StreamState

if TYPE_CHECKING:
    from streamsync.components.game_names import GameNameCache
    from streamsync.components.titles import TitleTemplateEngine
    from streamsync.core.context import SyncContext

LOGGER = logging.getLogger("Sync.StreamState")

OFFLINE_MAX_RETRIES = 3
DRIFT_MAX_RETRIES = 15


class StreamStateMachine:
    """Owns :class:`StreamState` and the per-stream counters.

    ``handle`` is fed by the stream data poller; ``reconcile_channel_data`` by
    the channel data poller. Each keeps its own title drift counter.
    """

    def __init__(
        self, ctx: SyncContext, games: GameNameCache, titles: TitleTemplateEngine
    ) -> None:
        self.ctx = ctx
        self.games = games
        self.titles = titles

        self.state = StreamState.OFFLINE
        self.stream_type = "live"
        self.offline_retries = RetryCounter(OFFLINE_MAX_RETRIES)
        self.drift_retries = RetryCounter(DRIFT_MAX_RETRIES)
        self.channel_drift_retries = RetryCounter(DRIFT_MAX_RETRIES)

        self.max_viewers = 0
        self.new_chatters = 0
        self.chat_lines_at_start = ctx.chat_lines

    async def restore(self) -> None:
        """Pick up the persisted online flag after a restart."""
        self.state = StreamState.ONLINE if await self.ctx.cache.is_online() else StreamState.OFFLINE
        LOGGER.info(f"Restored stream state: {self.state.value}")

    def record_new_chatter(self) -> None:
        self.new_chatters += 1

    def _now_iso(self) -> str:
        return datetime.fromtimestamp(self.ctx.clock(), tz=timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Title / game acceptance
    # ------------------------------------------------------------------

    async def _accept(self, title: str, game: str, counter: RetryCounter) -> bool:
        """Accept the platform's title and game unless they drift from the rendered title.

        Returns False when acceptance is deferred to a later tick.
        """
        raw_status = await self.ctx.cache.raw_status()
        expected = await self.titles.render(raw_status)

        if title != expected:
            attempt = counter.increment()
            if attempt < counter.limit:
                LOGGER.debug(
                    f"Title drift ({attempt}/{counter.limit}): expected '{expected}', got '{title}'"
                )
                return False
            LOGGER.info(f"Title drift persisted {counter.limit} times, accepting '{title}'")
            raw_status = title
        counter.reset()

        stats = self.ctx.stats
        stats.raw_status = raw_status
        stats.status = title
        stats.game = game

        await self.ctx.current.save("status", title)
        await self.ctx.current.save("game", game)
        await self.ctx.cache.set_game(game)
        await self.ctx.cache.set_raw_status(raw_status)
        return True

    async def reconcile_channel_data(self, title: str, game: str) -> bool:
        """Channel data poll result; a pending manual change skips one comparison."""
        if self.ctx.consume_manual_change():
            LOGGER.debug("Skipping channel data check after manual change")
            return False
        return await self._accept(title, game, self.channel_drift_retries)

    # ------------------------------------------------------------------
    # Stream data
    # ------------------------------------------------------------------

    async def handle(self, stream: dict | None) -> None:
        """Apply one stream data poll result (``None`` when no stream is live)."""
        if stream:
            await self._handle_online(stream)
        else:
            await self._handle_offline()

    async def _handle_online(self, stream: dict) -> None:
        self.offline_retries.reset()

        if self.ctx.consume_manual_change():
            LOGGER.debug("Skipping title drift check after manual change")
        else:
            game = await self.games.resolve(stream.get("game_id"))
            if not await self._accept(stream.get("title") or "", game, self.drift_retries):
                return

        stream_type = stream.get("type") or "live"
        if self.state is not StreamState.ONLINE or stream_type != self.stream_type:
            await self._start_stream(stream)

        await self._save_stream_data(stream)
        self.stream_type = stream_type
        self.state = StreamState.ONLINE
        await self.ctx.cache.set_online(True)

        events = self.ctx.events
        events.fire("number-of-viewers-is-at-least-x")
        events.fire("stream-is-running-x-minutes")
        events.fire("every-x-minutes-of-stream")

    async def _start_stream(self, stream: dict) -> None:
        LOGGER.info(f"Stream is online ({stream.get('type') or 'live'})")
        await self.ctx.cache.set_when(online=stream.get("started_at") or self._now_iso(), offline=None)

        stats = self.ctx.stats
        self.chat_lines_at_start = self.ctx.chat_lines
        stats.viewers = 0
        stats.bits = 0
        stats.tips = 0
        self.max_viewers = 0
        self.new_chatters = 0
        for key in ("viewers", "bits", "tips"):
            await self.ctx.current.save(key, getattr(stats, key))

        await self.ctx.cache.clear_hosts()

        if self.ctx.webhook_streams_enabled:
            return
        events = self.ctx.events
        events.fire("stream-started")
        events.fire("command-send-x-times", {"reset": True})
        events.fire("every-x-minutes-of-stream", {"reset": True})

    async def _save_stream_data(self, stream: dict) -> None:
        stats = self.ctx.stats
        stats.viewers = int(stream.get("viewer_count") or 0)
        await self.ctx.current.save("viewers", stats.viewers)
        self.max_viewers = max(self.max_viewers, stats.viewers)

        when = await self.ctx.cache.when()
        await self.ctx.stats_log.save(
            StatsSnapshot(
                timestamp=self.ctx.clock(),
                when_online=when["online"],
                viewers=stats.viewers,
                subscribers=stats.subscribers,
                bits=stats.bits,
                tips=stats.tips,
                chat_messages=self.ctx.chat_lines - self.chat_lines_at_start,
                followers=stats.followers,
                views=stats.views,
                max_viewers=self.max_viewers,
                new_chatters=self.new_chatters,
                hosts=stats.hosts,
            )
        )

    async def _handle_offline(self) -> None:
        if self.state is StreamState.ONLINE:
            attempt = self.offline_retries.increment()
            if attempt < self.offline_retries.limit:
                LOGGER.debug(f"Retry stream offline check ({attempt}/{self.offline_retries.limit})")
                return

        self.offline_retries.reset()
        if self.state is StreamState.ONLINE:
            LOGGER.info("Stream is offline")
        self.state = StreamState.OFFLINE
        await self.ctx.cache.set_online(False)

        when = await self.ctx.cache.when()
        if when["online"] and not when["offline"]:
            await self.ctx.cache.set_when(offline=self._now_iso())
            events = self.ctx.events
            events.fire("stream-stopped")
            events.fire("stream-is-running-x-minutes", {"reset": True})
            events.fire("number-of-viewers-is-at-least-x", {"reset": True})
