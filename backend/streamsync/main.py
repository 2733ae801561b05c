"""Platform sync service entrypoint."""

from __future__ import annotations

import asyncio
import logging

import asyncpg

from shared.database import DatabaseManager
from shared.migrations.runner import MigrationRunner
from shared.repositories.documents import DocumentStore
from streamsync.components.channel_editor import ChannelEditor
from streamsync.components.followers import FollowerReconciler
from streamsync.components.game_names import GameNameCache
from streamsync.components.pollers import (
    ChannelDataPoller,
    ChannelIdPoller,
    ChannelViewsPoller,
    FollowCheckTicker,
    FollowersPoller,
    HostsPoller,
    StreamDataPoller,
    SubscribersPoller,
)
from streamsync.components.stream_state import StreamStateMachine
from streamsync.components.titles import TitleTemplateEngine
from streamsync.core.config import SyncSettings, get_settings
from streamsync.core.context import SyncContext
from streamsync.core.events import EventBus
from streamsync.core.health_server import HealthCheckServer
from streamsync.core.logging import setup_logging
from streamsync.core.pg_listener import ChannelUpdateListener, ChatActivityListener
from streamsync.core.scheduler import PollScheduler
from streamsync.services.chat import ChatSink
from streamsync.services.helix import HelixClient

LOGGER = logging.getLogger("Sync")


class SyncService:
    """Wires the engine onto one database pool and runs it."""

    def __init__(self, settings: SyncSettings, pool: asyncpg.Pool) -> None:
        self.settings = settings
        self.pool = pool

        self.events = EventBus(pool)
        self.ctx = SyncContext.from_store(
            DocumentStore(pool),
            events=self.events,
            broadcaster_username=settings.broadcaster_username,
            bot_username=settings.bot_username,
            locale=settings.locale,
            webhook_streams_enabled=settings.webhook_streams_enabled,
        )
        self.api = HelixClient(
            self.ctx,
            client_id=settings.client_id,
            bot_token=settings.bot_oauth,
            broadcaster_token=settings.broadcaster_oauth,
        )
        self.ctx.chat = ChatSink(self.ctx, self.api, settings.bot_id)

        self.games = GameNameCache(self.ctx, self.api)
        self.titles = TitleTemplateEngine(self.ctx)
        self.machine = StreamStateMachine(self.ctx, self.games, self.titles)
        self.followers = FollowerReconciler(self.ctx, self.api)
        self.editor = ChannelEditor(self.ctx, self.api, self.titles)

        self.scheduler = PollScheduler()
        for task in (
            ChannelIdPoller(self.ctx, self.api),
            StreamDataPoller(self.ctx, self.api, self.machine),
            ChannelDataPoller(self.ctx, self.api, self.machine),
            FollowersPoller(self.ctx, self.api, self.followers),
            ChannelViewsPoller(self.ctx, self.api),
            HostsPoller(self.ctx, self.api),
            SubscribersPoller(self.ctx, self.api),
            FollowCheckTicker(self.ctx, self.api, self.followers),
        ):
            self.scheduler.add(task)

        self.health = HealthCheckServer(self.ctx, self.machine, port=settings.health_port)
        self.channel_updates = ChannelUpdateListener(self.editor)
        self.chat_activity = ChatActivityListener(self.ctx, self.machine)

    async def run(self) -> None:
        await self.ctx.load_cached_state()
        await self.machine.restore()
        LOGGER.info(
            f"Loaded cached state: game='{self.ctx.stats.game}', raw status='{self.ctx.stats.raw_status}'"
        )

        await self.health.start()
        self.scheduler.start()
        try:
            await asyncio.gather(
                self.channel_updates.run(self.pool),
                self.chat_activity.run(self.pool),
            )
        finally:
            await self.scheduler.stop()
            await self.health.stop()
            await self.events.drain()
            await self.api.close()


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)

    async def runner() -> None:
        db = DatabaseManager(settings.database_url)
        await db.connect()
        try:
            await MigrationRunner(db.pool).run_pending()
            await SyncService(settings, db.pool).run()
        finally:
            await db.disconnect()

    try:
        asyncio.run(runner())
    except KeyboardInterrupt:
        LOGGER.warning("Shutting down due to KeyboardInterrupt...")


if __name__ == "__main__":
    main()
