"""One repeating task per platform call kind."""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import TYPE_CHECKING

from streamsync.core.config import (
    CHANNEL_DATA_INTERVAL,
    CHANNEL_ID_INTERVAL,
    CHANNEL_VIEWS_INTERVAL,
    FOLLOW_CHECK_TICK,
    FOLLOWERS_INTERVAL,
    HOSTS_INTERVAL,
    STREAM_DATA_INTERVAL,
    SUBSCRIBERS_INTERVAL,
)
from streamsync.core.errors import PlatformError, SyncError
from streamsync.core.rate_limit import BUDGET_WAIT_DELAY, retry_delay
from streamsync.core.scheduler import RepeatingTask

if TYPE_CHECKING:
    from streamsync.components.followers import FollowerReconciler
    from streamsync.components.stream_state import StreamStateMachine
    from streamsync.core.context import SyncContext
    from streamsync.services.helix import HelixClient

LOGGER = logging.getLogger("Sync.Pollers")

# Statuses meaning the broadcaster can't have subscribers polled (not affiliate, bad token)
SUBSCRIBERS_UNAVAILABLE = (401, 403, 422)


class ApiPoller(RepeatingTask):
    """Waits for the channel id, honours the rate budget, then runs ``poll``."""

    budgeted = True
    needs_channel = True

    def __init__(self, ctx: SyncContext, api: HelixClient) -> None:
        self.ctx = ctx
        self.api = api

    async def tick(self) -> float | None:
        channel_id = await self.ctx.channel.wait() if self.needs_channel else None

        if self.budgeted and not self.ctx.rate_budget.can_proceed():
            LOGGER.debug(
                f"[{self.name}] Waiting for rate-limit to refresh "
                f"(remaining={self.ctx.rate_budget.remaining})"
            )
            return BUDGET_WAIT_DELAY

        try:
            return await self.poll(channel_id)
        except SyncError as e:
            delay = retry_delay(e, self.interval)
            LOGGER.debug(f"[{self.name}] failed ({e}), next attempt in {delay}s")
            return delay

    @abstractmethod
    async def poll(self, channel_id: str | None) -> float | None: ...


class ChannelIdPoller(ApiPoller):
    name = "getChannelID"
    interval = CHANNEL_ID_INTERVAL
    needs_channel = False

    async def poll(self, channel_id: str | None) -> float | None:
        user = await self.api.get_user_by_login(self.ctx.broadcaster_username)
        if not user:
            LOGGER.error(f"Channel ID for '{self.ctx.broadcaster_username}' not found")
            return self.interval

        resolved = str(user["id"])
        if self.ctx.channel.value != resolved:
            await self.ctx.cache.set_channel_id(resolved)
            self.ctx.channel.resolve(resolved)
            LOGGER.info(f"Channel ID of {self.ctx.broadcaster_username} is {resolved}")
        return self.interval


class StreamDataPoller(ApiPoller):
    name = "getCurrentStreamData"
    interval = STREAM_DATA_INTERVAL

    def __init__(self, ctx: SyncContext, api: HelixClient, machine: StreamStateMachine) -> None:
        super().__init__(ctx, api)
        self.machine = machine

    async def poll(self, channel_id: str | None) -> float | None:
        stream = await self.api.get_stream(channel_id)
        await self.machine.handle(stream)
        return self.interval


class ChannelDataPoller(ApiPoller):
    name = "getChannelData"
    interval = CHANNEL_DATA_INTERVAL

    def __init__(self, ctx: SyncContext, api: HelixClient, machine: StreamStateMachine) -> None:
        super().__init__(ctx, api)
        self.machine = machine

    async def poll(self, channel_id: str | None) -> float | None:
        channel = await self.api.get_channel(channel_id)
        if channel:
            await self.machine.reconcile_channel_data(
                channel.get("title") or "", channel.get("game_name") or ""
            )
        return self.interval


class FollowersPoller(ApiPoller):
    name = "getLatest100Followers"
    interval = FOLLOWERS_INTERVAL

    def __init__(self, ctx: SyncContext, api: HelixClient, followers: FollowerReconciler) -> None:
        super().__init__(ctx, api)
        self.followers = followers
        self.quiet = True

    async def poll(self, channel_id: str | None) -> float | None:
        await self.followers.refresh_latest(channel_id, quiet=self.quiet)
        self.quiet = False
        return self.interval


class ChannelViewsPoller(ApiPoller):
    name = "updateChannelViews"
    interval = CHANNEL_VIEWS_INTERVAL

    async def poll(self, channel_id: str | None) -> float | None:
        user = await self.api.get_user_by_id(channel_id)
        if user:
            self.ctx.stats.views = int(user.get("view_count") or 0)
            await self.ctx.current.save("views", self.ctx.stats.views)
        return self.interval


class HostsPoller(ApiPoller):
    name = "getChannelHosts"
    interval = HOSTS_INTERVAL
    budgeted = False

    async def poll(self, channel_id: str | None) -> float | None:
        hosts = await self.api.get_hosts(channel_id)
        LOGGER.debug(f"Current host count: {len(hosts)}, Hosts: {', '.join(hosts)}")
        self.ctx.stats.hosts = len(hosts)
        await self.ctx.current.save("hosts", len(hosts))
        for host in hosts:
            await self.ctx.cache.add_host(host)
        return self.interval


class SubscribersPoller(ApiPoller):
    name = "getChannelSubscribers"
    interval = SUBSCRIBERS_INTERVAL

    async def tick(self) -> float | None:
        if not self.api.has_broadcaster_token:
            LOGGER.info("No broadcaster token, subscriber polling disabled")
            return None
        return await super().tick()

    async def _disable(self, reason: str) -> None:
        LOGGER.warning(f"{reason}, will not check subs")
        self.ctx.stats.subscribers = 0
        await self.ctx.current.save("subscribers", 0)

    async def poll(self, channel_id: str | None) -> float | None:
        try:
            page = await self.api.get_subscriptions(channel_id)
        except PlatformError as e:
            if e.status == 422:
                await self._disable("Broadcaster is not affiliate/partner")
                return None
            if e.status in SUBSCRIBERS_UNAVAILABLE:
                await self._disable("Broadcaster token is not valid for subscriptions")
                return None
            raise

        # The broadcaster counts as their own subscriber
        self.ctx.stats.subscribers = max(page.total - 1, 0)
        await self.ctx.current.save("subscribers", self.ctx.stats.subscribers)

        for sub in page.data:
            username = (sub.get("user_login") or "").lower()
            if not username or self.ctx.is_channel_account(username):
                continue
            await self.ctx.users.set(username, {"is": {"subscriber": True}})
        return self.interval


class FollowCheckTicker(ApiPoller):
    """Processes at most one queued follow check per tick."""

    name = "isFollowerUpdate"
    interval = FOLLOW_CHECK_TICK

    def __init__(self, ctx: SyncContext, api: HelixClient, followers: FollowerReconciler) -> None:
        super().__init__(ctx, api)
        self.followers = followers

    async def tick(self) -> float | None:
        if not len(self.followers.queue):
            return self.interval
        return await super().tick()

    async def poll(self, channel_id: str | None) -> float | None:
        # A failed check drops the entry; the ticker keeps its fixed rate
        try:
            await self.followers.process_next(channel_id)
        except SyncError as e:
            LOGGER.error(f"Follow check failed: {e}")
        return self.interval
