"""Follower reconciliation: bulk refresh of the latest followers and
rate-limited single-user follow checks.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from streamsync.core.errors import SyncError
from streamsync.services.helix import parse_timestamp

if TYPE_CHECKING:
    from streamsync.core.context import SyncContext
    from streamsync.services.helix import HelixClient

LOGGER = logging.getLogger("Sync.Followers")

# A follow older than this is state, not news
FOLLOW_RECENCY = 60 * 60
# Minimum age of the last check before a user is re-checked
FOLLOW_CHECK_MAX_AGE = 30 * 60


class FollowCheckQueue:
    """FIFO of usernames waiting for a follow check; a queued name is never queued twice."""

    def __init__(self) -> None:
        self._items: deque[str] = deque()
        self._queued: set[str] = set()

    def push(self, username: str) -> bool:
        username = username.lower()
        if username in self._queued:
            return False
        self._items.append(username)
        self._queued.add(username)
        return True

    def pop(self) -> str | None:
        if not self._items:
            return None
        username = self._items.popleft()
        self._queued.discard(username)
        return username

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, username: str) -> bool:
        return username.lower() in self._queued


class FollowerReconciler:
    def __init__(self, ctx: SyncContext, api: HelixClient) -> None:
        self.ctx = ctx
        self.api = api
        self.queue = FollowCheckQueue()

    def _is_recent(self, followed_at: float) -> bool:
        return self.ctx.clock() - followed_at < FOLLOW_RECENCY

    async def _announce_follow(self, username: str, user_id: str, quiet: bool = False) -> None:
        self.ctx.follow_dedup.add(user_id)
        await self.ctx.eventlist.add("follow", username, self.ctx.clock())
        if quiet:
            return
        LOGGER.info(f"+follow: {username}")
        self.ctx.events.fire("follow", {"username": username})

    # ------------------------------------------------------------------
    # Bulk refresh
    # ------------------------------------------------------------------

    async def refresh_latest(self, channel_id: str, quiet: bool = False) -> int:
        """Reconcile the latest 100 followers and publish the follower total.

        A *quiet* refresh records new follows without logging or firing ``follow``;
        used for the first pass after startup so follows made while the service
        was down are not announced again.
        """
        page = await self.api.get_followers(channel_id)

        followed_at: dict[str, float] = {}
        for entry in page.data:
            if entry.get("user_id"):
                followed_at[str(entry["user_id"])] = parse_timestamp(entry.get("followed_at"))

        usernames: dict[str, str] = {}
        unknown: list[str] = []
        for user_id in followed_at:
            record = await self.ctx.users.find_by_external_id(user_id)
            if record is not None:
                usernames[user_id] = record.username
            else:
                unknown.append(user_id)

        if unknown:
            LOGGER.debug(f"Resolving {len(unknown)} unknown follower ids")
            for user in await self.api.get_users_by_ids(unknown, call="getLatest100Followers"):
                username = user["login"].lower()
                await self.ctx.users.save_external_id(username, user["id"])
                usernames[str(user["id"])] = username

        now = self.ctx.clock()
        for user_id, username in usernames.items():
            user = await self.ctx.users.get(username)
            when = followed_at[user_id]
            if (
                not user.is_follower
                and self._is_recent(when)
                and user_id not in self.ctx.follow_dedup
                and not self.ctx.is_channel_account(username)
            ):
                await self._announce_follow(username, user_id, quiet)
            await self.ctx.users.set(
                username, {"is": {"follower": True}, "time": {"follow_check": now, "follow": when}}
            )

        self.ctx.stats.followers = page.total
        await self.ctx.current.save("followers", page.total)
        LOGGER.debug(f"Current followers count: {page.total}")
        return page.total

    # ------------------------------------------------------------------
    # Single-user checks
    # ------------------------------------------------------------------

    async def request_check(self, username: str) -> bool:
        """Queue a follow check if the user's last one is stale. Returns True if queued."""
        user = await self.ctx.users.get(username)
        if self.ctx.clock() - user.last_follow_check < FOLLOW_CHECK_MAX_AGE:
            return False
        return self.queue.push(user.username)

    async def process_next(self, channel_id: str) -> bool:
        """Check at most one queued user. Returns False when the queue was empty."""
        username = self.queue.pop()
        if username is None:
            return False
        await self.check_user(channel_id, username)
        return True

    async def check_user(self, channel_id: str, username: str) -> None:
        if self.ctx.is_channel_account(username):
            LOGGER.debug(f"Follow check skipped for channel account {username}")
            return

        user = await self.ctx.users.get(username)
        if not user.external_id:
            LOGGER.debug(f"Follow check skipped for {username}: no user id yet")
            return

        page = await self.api.get_follow(channel_id, user.external_id)
        now = self.ctx.clock()

        # total counts all channel followers; data holds the filtered user
        if not page.data:
            if user.is_follower:
                LOGGER.info(f"-follow: {user.username}")
                self.ctx.events.fire("unfollow", {"username": user.username})
            await self.ctx.users.set(
                user.username,
                {"is": {"follower": False}, "time": {"follow_check": now, "follow": 0}},
                emit_change=user.is_follower,
            )
            return

        when = parse_timestamp(page.data[0].get("followed_at"))
        if not user.is_follower and self._is_recent(when):
            await self._announce_follow(user.username, user.external_id)
        await self.ctx.users.set(
            user.username,
            {"is": {"follower": True}, "time": {"follow_check": now, "follow": when}},
            emit_change=not user.is_follower,
        )

    async def fetch_account_age(self, username: str, user_id: str) -> float | None:
        """Store the account creation time on the user record."""
        try:
            user = await self.api.get_user_by_id(user_id, call="fetchAccountAge")
        except SyncError as e:
            LOGGER.error(f"Account age lookup for {username} failed: {e}")
            return None
        if not user or not user.get("created_at"):
            LOGGER.warning(f"No account data for {username} ({user_id})")
            return None

        created_at = parse_timestamp(user["created_at"])
        await self.ctx.users.set(username, {"time": {"created_at": created_at}})
        return created_at
