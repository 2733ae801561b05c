"""Stream online/offline transitions, title drift and channel data reconciliation."""

import pytest
import pytest_asyncio
from conftest import event_names

from streamsync.components.game_names import GameNameCache
from streamsync.components.stream_state import StreamStateMachine
from streamsync.components.titles import TitleTemplateEngine
from streamsync.core.context import StreamState


def live_stream(title="Chess with chat", **overrides):
    stream = {
        "id": "1",
        "title": title,
        "game_id": "743",
        "type": "live",
        "viewer_count": 42,
        "started_at": "2023-11-14T22:00:00Z",
    }
    stream.update(overrides)
    return stream


@pytest_asyncio.fixture
async def machine(ctx, api):
    await ctx.cache.save_game_names({"743": "Chess"})
    await ctx.cache.set_raw_status("Chess with chat")
    return StreamStateMachine(ctx, GameNameCache(ctx, api), TitleTemplateEngine(ctx))


class TestGoingOnline:
    @pytest.mark.asyncio
    async def test_single_active_response_goes_online(self, ctx, machine, fired):
        await machine.handle(live_stream())

        assert machine.state is StreamState.ONLINE
        assert await ctx.cache.is_online() is True
        names = event_names(fired)
        assert names.count("stream-started") == 1
        assert ("command-send-x-times", {"reset": True}) in fired
        assert ("every-x-minutes-of-stream", {"reset": True}) in fired
        assert "number-of-viewers-is-at-least-x" in names
        assert "stream-is-running-x-minutes" in names

    @pytest.mark.asyncio
    async def test_accepts_title_game_and_viewers(self, ctx, machine, store):
        await machine.handle(live_stream())

        assert ctx.stats.status == "Chess with chat"
        assert ctx.stats.game == "Chess"
        assert ctx.stats.viewers == 42
        assert await ctx.cache.game() == "Chess"
        current = {d["key"]: d["value"] for d in await store.find("api.current")}
        assert current["viewers"] == 42
        assert current["status"] == "Chess with chat"

    @pytest.mark.asyncio
    async def test_start_resets_per_stream_counters(self, ctx, machine):
        ctx.stats.bits = 300
        ctx.stats.tips = 12.5
        machine.max_viewers = 999
        machine.new_chatters = 7
        await ctx.cache.add_host("someone")

        await machine.handle(live_stream())

        assert ctx.stats.bits == 0
        assert ctx.stats.tips == 0
        assert machine.max_viewers == 42
        assert machine.new_chatters == 0
        assert await ctx.cache.hosts() == []
        assert (await ctx.cache.when())["online"] == "2023-11-14T22:00:00Z"

    @pytest.mark.asyncio
    async def test_writes_stats_snapshot_every_tick(self, ctx, machine, store):
        ctx.chat_lines = 10
        await machine.handle(live_stream())
        ctx.chat_lines = 25
        await machine.handle(live_stream(viewer_count=50))

        snapshots = await store.find("stats")
        assert len(snapshots) == 2
        assert snapshots[-1]["viewers"] == 50
        assert snapshots[-1]["max_viewers"] == 50
        assert snapshots[-1]["chat_messages"] == 15
        assert snapshots[-1]["when_online"] == "2023-11-14T22:00:00Z"

    @pytest.mark.asyncio
    async def test_snapshot_counts_new_chatters(self, machine, store):
        await machine.handle(live_stream())
        machine.record_new_chatter()
        machine.record_new_chatter()
        await machine.handle(live_stream())

        snapshots = await store.find("stats")
        assert snapshots[0]["new_chatters"] == 0
        assert snapshots[-1]["new_chatters"] == 2

    @pytest.mark.asyncio
    async def test_stream_started_only_once(self, machine, fired):
        for _ in range(3):
            await machine.handle(live_stream())
        assert event_names(fired).count("stream-started") == 1

    @pytest.mark.asyncio
    async def test_stream_type_change_restarts(self, machine, fired):
        await machine.handle(live_stream(type="rerun"))
        await machine.handle(live_stream(type="live"))
        assert event_names(fired).count("stream-started") == 2

    @pytest.mark.asyncio
    async def test_push_notifications_own_stream_started(self, ctx, machine, fired):
        ctx.webhook_streams_enabled = True

        await machine.handle(live_stream())

        assert machine.state is StreamState.ONLINE
        assert "stream-started" not in event_names(fired)
        assert "number-of-viewers-is-at-least-x" in event_names(fired)


class TestGoingOffline:
    @pytest.mark.asyncio
    async def test_requires_three_empty_responses(self, ctx, machine, fired):
        await machine.handle(live_stream())

        await machine.handle(None)
        await machine.handle(None)
        assert machine.state is StreamState.ONLINE
        assert "stream-stopped" not in event_names(fired)

        await machine.handle(None)
        assert machine.state is StreamState.OFFLINE
        assert await ctx.cache.is_online() is False
        assert event_names(fired).count("stream-stopped") == 1
        assert ("stream-is-running-x-minutes", {"reset": True}) in fired
        assert ("number-of-viewers-is-at-least-x", {"reset": True}) in fired
        assert (await ctx.cache.when())["offline"] is not None

    @pytest.mark.asyncio
    async def test_active_response_resets_confirmation(self, machine):
        await machine.handle(live_stream())
        for _ in range(2):
            await machine.handle(None)
        await machine.handle(live_stream())
        assert machine.offline_retries.count == 0

        for _ in range(2):
            await machine.handle(None)
        assert machine.state is StreamState.ONLINE

    @pytest.mark.asyncio
    async def test_stream_stopped_fires_once(self, machine, fired):
        await machine.handle(live_stream())
        for _ in range(6):
            await machine.handle(None)
        assert event_names(fired).count("stream-stopped") == 1

    @pytest.mark.asyncio
    async def test_never_online_never_stopped(self, machine, fired):
        for _ in range(5):
            await machine.handle(None)
        assert machine.state is StreamState.OFFLINE
        assert "stream-stopped" not in event_names(fired)

    @pytest.mark.asyncio
    async def test_restore_from_cache(self, ctx, machine, fired):
        await ctx.cache.set_online(True)
        await ctx.cache.set_when(online="2023-11-14T22:00:00Z", offline=None)

        await machine.restore()
        assert machine.state is StreamState.ONLINE

        for _ in range(3):
            await machine.handle(None)
        assert event_names(fired).count("stream-stopped") == 1


class TestTitleDrift:
    @pytest.mark.asyncio
    async def test_fourteen_mismatches_defer(self, ctx, machine, fired):
        for _ in range(14):
            await machine.handle(live_stream(title="Changed on the dashboard"))

        assert await ctx.cache.raw_status() == "Chess with chat"
        assert machine.state is StreamState.OFFLINE
        assert machine.drift_retries.count == 14
        assert ctx.stats.status == ""
        assert "stream-started" not in event_names(fired)

    @pytest.mark.asyncio
    async def test_fifteenth_mismatch_forces_acceptance(self, ctx, machine):
        for _ in range(15):
            await machine.handle(live_stream(title="Changed on the dashboard"))

        assert await ctx.cache.raw_status() == "Changed on the dashboard"
        assert ctx.stats.raw_status == "Changed on the dashboard"
        assert ctx.stats.status == "Changed on the dashboard"
        assert machine.drift_retries.count == 0
        assert machine.state is StreamState.ONLINE

    @pytest.mark.asyncio
    async def test_match_resets_counter(self, machine):
        for _ in range(5):
            await machine.handle(live_stream(title="Something else"))
        await machine.handle(live_stream())
        assert machine.drift_retries.count == 0

    @pytest.mark.asyncio
    async def test_deferred_tick_still_resets_offline_counter(self, machine):
        await machine.handle(live_stream())
        await machine.handle(None)
        await machine.handle(None)

        await machine.handle(live_stream(title="Something else"))

        assert machine.offline_retries.count == 0

    @pytest.mark.asyncio
    async def test_rendered_template_is_expected_title(self, ctx, machine, store):
        await store.insert("custom.variables", {"variableName": "goal", "currentValue": "100"})
        await ctx.cache.set_raw_status("Road to $_goal")

        await machine.handle(live_stream(title="Road to 100"))

        assert machine.drift_retries.count == 0
        assert ctx.stats.raw_status == "Road to $_goal"
        assert ctx.stats.status == "Road to 100"

    @pytest.mark.asyncio
    async def test_manual_change_skips_one_check(self, ctx, machine):
        ctx.changed_manually = True

        await machine.handle(live_stream(title="Not yet updated"))
        assert machine.drift_retries.count == 0
        assert ctx.changed_manually is False
        assert machine.state is StreamState.ONLINE

        await machine.handle(live_stream(title="Not yet updated"))
        assert machine.drift_retries.count == 1


class TestChannelData:
    @pytest.mark.asyncio
    async def test_accepts_matching_title(self, ctx, machine):
        assert await machine.reconcile_channel_data("Chess with chat", "Chess") is True
        assert ctx.stats.game == "Chess"
        assert await ctx.cache.game() == "Chess"

    @pytest.mark.asyncio
    async def test_has_own_drift_counter(self, ctx, machine):
        for _ in range(3):
            await machine.reconcile_channel_data("Other", "Chess")
        await machine.handle(live_stream(title="Other"))

        assert machine.channel_drift_retries.count == 3
        assert machine.drift_retries.count == 1

    @pytest.mark.asyncio
    async def test_fifteenth_mismatch_accepts(self, ctx, machine):
        results = [await machine.reconcile_channel_data("Other", "Go") for _ in range(15)]

        assert results[:14] == [False] * 14
        assert results[14] is True
        assert await ctx.cache.raw_status() == "Other"
        assert ctx.stats.game == "Go"

    @pytest.mark.asyncio
    async def test_consumes_manual_flag(self, ctx, machine):
        ctx.changed_manually = True
        assert await machine.reconcile_channel_data("Other", "Go") is False
        assert ctx.changed_manually is False
        assert machine.channel_drift_retries.count == 0
