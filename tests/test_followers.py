"""Follower reconciliation: bulk refresh, single-user checks, check queue."""

from datetime import datetime, timezone

import httpx
import pytest
from conftest import CHANNEL_ID, NOW, event_names

from streamsync.components.followers import (
    FOLLOW_CHECK_MAX_AGE,
    FollowCheckQueue,
    FollowerReconciler,
)
from streamsync.components.pollers import FollowCheckTicker, FollowersPoller


def iso(ts):
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


RECENT = iso(NOW - 120)
OLD = iso(NOW - 3 * 60 * 60)


def serve_users(twitch, users):
    """``GET /helix/users?id=..`` answering only for ids in *users*."""

    def handler(request):
        ids = request.url.params.get_list("id")
        data = [{"id": i, "login": users[i]} for i in ids if i in users]
        return httpx.Response(200, json={"data": data})

    twitch.route_handler("GET", "/helix/users", handler)


def followers_page(*entries, total=None):
    data = [{"user_id": uid, "followed_at": when} for uid, when in entries]
    return {"total": total if total is not None else len(data), "data": data}


class TestFollowCheckQueue:
    def test_fifo(self):
        queue = FollowCheckQueue()
        for name in ("a", "b", "c"):
            queue.push(name)
        assert [queue.pop(), queue.pop(), queue.pop(), queue.pop()] == ["a", "b", "c", None]

    def test_dedups_queued_names(self):
        queue = FollowCheckQueue()
        assert queue.push("Viewer") is True
        assert queue.push("viewer") is False
        assert len(queue) == 1
        assert "VIEWER" in queue

    def test_can_requeue_after_pop(self):
        queue = FollowCheckQueue()
        queue.push("viewer")
        queue.pop()
        assert queue.push("viewer") is True


class TestBulkRefresh:
    @pytest.mark.asyncio
    async def test_unknown_ids_resolved_in_one_batch(self, ctx, api, twitch, store):
        await ctx.users.save_external_id("known", "1")
        twitch.route(
            "GET",
            "/helix/channels/followers",
            json=followers_page(("1", OLD), ("2", OLD), ("3", OLD), total=250),
        )
        serve_users(twitch, {"2": "NewOne", "3": "newtwo"})

        total = await FollowerReconciler(ctx, api).refresh_latest(CHANNEL_ID)

        assert total == 250
        assert ctx.stats.followers == 250
        user_calls = twitch.calls("/helix/users")
        assert len(user_calls) == 1
        assert user_calls[0].url.params.get_list("id") == ["2", "3"]
        assert (await ctx.users.find_by_external_id("2")).username == "newone"
        for name in ("known", "newone", "newtwo"):
            record = await ctx.users.get(name)
            assert record.is_follower is True
            assert record.last_follow_check == NOW

    @pytest.mark.asyncio
    async def test_recent_follow_fires_once(self, ctx, api, twitch, fired, store):
        twitch.route("GET", "/helix/channels/followers", json=followers_page(("7", RECENT)))
        serve_users(twitch, {"7": "fan"})
        followers = FollowerReconciler(ctx, api)

        await followers.refresh_latest(CHANNEL_ID)
        await ctx.users.set("fan", {"is": {"follower": False}})
        await followers.refresh_latest(CHANNEL_ID)

        assert fired.count(("follow", {"username": "fan"})) == 1
        assert "7" in ctx.follow_dedup
        overlay = await store.find("eventlist")
        assert overlay == [{"type": "follow", "username": "fan", "timestamp": NOW}]

    @pytest.mark.asyncio
    async def test_quiet_refresh_records_without_announcing(self, ctx, api, twitch, fired, store):
        twitch.route("GET", "/helix/channels/followers", json=followers_page(("9", RECENT)))
        serve_users(twitch, {"9": "whiledown"})

        await FollowerReconciler(ctx, api).refresh_latest(CHANNEL_ID, quiet=True)

        assert "follow" not in event_names(fired)
        assert "9" in ctx.follow_dedup
        assert (await ctx.users.get("whiledown")).is_follower is True
        overlay = await store.find("eventlist")
        assert overlay == [{"type": "follow", "username": "whiledown", "timestamp": NOW}]

    @pytest.mark.asyncio
    async def test_poller_first_refresh_is_quiet(self, ctx, api, twitch, fired):
        ctx.channel.resolve(CHANNEL_ID)
        pages = [followers_page(("30", RECENT)), followers_page(("30", RECENT), ("31", RECENT))]

        def handler(request):
            return httpx.Response(200, json=pages.pop(0))

        twitch.route_handler("GET", "/helix/channels/followers", handler)
        serve_users(twitch, {"30": "early", "31": "later"})
        poller = FollowersPoller(ctx, api, FollowerReconciler(ctx, api))

        await poller.tick()
        assert "follow" not in event_names(fired)

        await poller.tick()
        assert [p for e, p in fired if e == "follow"] == [{"username": "later"}]

    @pytest.mark.asyncio
    async def test_failed_first_refresh_stays_quiet(self, ctx, api, twitch, fired):
        ctx.channel.resolve(CHANNEL_ID)
        twitch.route("GET", "/helix/channels/followers", status=500, json={"message": "oops"})
        poller = FollowersPoller(ctx, api, FollowerReconciler(ctx, api))

        await poller.tick()

        assert poller.quiet is True

    @pytest.mark.asyncio
    async def test_old_follow_updates_state_silently(self, ctx, api, twitch, fired):
        twitch.route("GET", "/helix/channels/followers", json=followers_page(("8", OLD)))
        serve_users(twitch, {"8": "lurker"})

        await FollowerReconciler(ctx, api).refresh_latest(CHANNEL_ID)

        assert "follow" not in event_names(fired)
        record = await ctx.users.get("lurker")
        assert record.is_follower is True
        assert record.followed_at == NOW - 3 * 60 * 60

    @pytest.mark.asyncio
    async def test_channel_accounts_never_follow(self, ctx, api, twitch, fired, store):
        twitch.route(
            "GET",
            "/helix/channels/followers",
            json=followers_page(("10", RECENT), ("11", RECENT)),
        )
        serve_users(twitch, {"10": "Caster", "11": "syncbot"})

        await FollowerReconciler(ctx, api).refresh_latest(CHANNEL_ID)

        assert "follow" not in event_names(fired)
        assert await store.find("eventlist") == []

    @pytest.mark.asyncio
    async def test_already_announced_by_push_path(self, ctx, api, twitch, fired):
        ctx.follow_dedup.add("12")
        twitch.route("GET", "/helix/channels/followers", json=followers_page(("12", RECENT)))
        serve_users(twitch, {"12": "pushed"})

        await FollowerReconciler(ctx, api).refresh_latest(CHANNEL_ID)

        assert "follow" not in event_names(fired)
        assert (await ctx.users.get("pushed")).is_follower is True


class TestSingleCheck:
    @pytest.mark.asyncio
    async def test_unfollow_for_previous_follower(self, ctx, api, twitch, fired):
        await ctx.users.save_external_id("gone", "20")
        await ctx.users.set("gone", {"is": {"follower": True}})
        twitch.route("GET", "/helix/channels/followers", json={"total": 500, "data": []})

        await FollowerReconciler(ctx, api).check_user(CHANNEL_ID, "gone")

        assert ("unfollow", {"username": "gone"}) in fired
        record = await ctx.users.get("gone")
        assert record.is_follower is False
        assert record.last_follow_check == NOW
        assert "user-changed" in event_names(fired)

    @pytest.mark.asyncio
    async def test_no_unfollow_for_non_follower(self, ctx, api, twitch, fired):
        await ctx.users.save_external_id("never", "21")
        twitch.route("GET", "/helix/channels/followers", json={"total": 500, "data": []})

        await FollowerReconciler(ctx, api).check_user(CHANNEL_ID, "never")

        assert "unfollow" not in event_names(fired)
        assert "user-changed" not in event_names(fired)

    @pytest.mark.asyncio
    async def test_new_recent_follow(self, ctx, api, twitch, fired):
        await ctx.users.save_external_id("newfan", "22")
        twitch.route(
            "GET",
            "/helix/channels/followers",
            json={"total": 500, "data": [{"user_id": "22", "followed_at": RECENT}]},
        )

        await FollowerReconciler(ctx, api).check_user(CHANNEL_ID, "newfan")

        assert ("follow", {"username": "newfan"}) in fired
        request = twitch.calls("/helix/channels/followers")[0]
        assert request.url.params["user_id"] == "22"
        assert request.url.params["broadcaster_id"] == CHANNEL_ID

    @pytest.mark.asyncio
    async def test_existing_follower_no_event(self, ctx, api, twitch, fired):
        await ctx.users.save_external_id("loyal", "23")
        await ctx.users.set("loyal", {"is": {"follower": True}})
        twitch.route(
            "GET",
            "/helix/channels/followers",
            json={"total": 500, "data": [{"user_id": "23", "followed_at": RECENT}]},
        )

        await FollowerReconciler(ctx, api).check_user(CHANNEL_ID, "loyal")

        assert "follow" not in event_names(fired)

    @pytest.mark.asyncio
    async def test_skips_channel_accounts_and_missing_ids(self, ctx, api, twitch, fired):
        await ctx.users.save_external_id("caster", "1000")
        followers = FollowerReconciler(ctx, api)

        await followers.check_user(CHANNEL_ID, "Caster")
        await followers.check_user(CHANNEL_ID, "syncbot")
        await followers.check_user(CHANNEL_ID, "no-id-yet")

        assert twitch.requests == []
        assert fired == []

    @pytest.mark.asyncio
    async def test_request_check_honours_max_age(self, ctx, api, clock):
        followers = FollowerReconciler(ctx, api)
        await ctx.users.set("fresh", {"time": {"follow_check": NOW - 60}})
        await ctx.users.set("stale", {"time": {"follow_check": NOW - FOLLOW_CHECK_MAX_AGE}})

        assert await followers.request_check("fresh") is False
        assert await followers.request_check("stale") is True
        assert await followers.request_check("stale") is False
        assert len(followers.queue) == 1


class TestFollowCheckTicker:
    @pytest.mark.asyncio
    async def test_one_check_per_tick(self, ctx, api, twitch):
        ctx.channel.resolve(CHANNEL_ID)
        twitch.route("GET", "/helix/channels/followers", json={"total": 0, "data": []})
        followers = FollowerReconciler(ctx, api)
        for i in range(100):
            await ctx.users.save_external_id(f"viewer{i}", str(5000 + i))
            followers.queue.push(f"viewer{i}")
            followers.queue.push(f"viewer{i}")
        assert len(followers.queue) == 100

        ticker = FollowCheckTicker(ctx, api, followers)
        for tick in range(1, 4):
            assert await ticker.tick() == ticker.interval
            assert len(twitch.calls("/helix/channels/followers")) == tick
        assert len(followers.queue) == 97

    @pytest.mark.asyncio
    async def test_exhausted_budget_leaves_queue(self, ctx, api, twitch, clock):
        ctx.channel.resolve(CHANNEL_ID)
        ctx.rate_budget.observe(3, clock() + 30)
        followers = FollowerReconciler(ctx, api)
        followers.queue.push("viewer")

        await FollowCheckTicker(ctx, api, followers).tick()

        assert len(followers.queue) == 1
        assert twitch.requests == []

    @pytest.mark.asyncio
    async def test_failed_check_keeps_tick_rate(self, ctx, api, twitch):
        ctx.channel.resolve(CHANNEL_ID)
        await ctx.users.save_external_id("viewer", "30")
        twitch.route("GET", "/helix/channels/followers", status=500, json={"message": "oops"})
        followers = FollowerReconciler(ctx, api)
        followers.queue.push("viewer")
        ticker = FollowCheckTicker(ctx, api, followers)

        assert await ticker.tick() == ticker.interval
        assert len(followers.queue) == 0


class TestAccountAge:
    @pytest.mark.asyncio
    async def test_stores_created_at(self, ctx, api, twitch, store):
        twitch.route(
            "GET",
            "/helix/users",
            json={"data": [{"id": "40", "login": "old", "created_at": "2015-01-01T00:00:00Z"}]},
        )

        created = await FollowerReconciler(ctx, api).fetch_account_age("old", "40")

        assert created == 1420070400.0
        doc = await store.find_one("users", {"username": "old"})
        assert doc["time"]["created_at"] == 1420070400.0

    @pytest.mark.asyncio
    async def test_failure_returns_none(self, ctx, api, twitch):
        twitch.route("GET", "/helix/users", status=503, json={"message": "unavailable"})
        assert await FollowerReconciler(ctx, api).fetch_account_age("old", "40") is None
