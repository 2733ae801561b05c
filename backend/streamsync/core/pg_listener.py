"""PostgreSQL LISTEN helper with auto-reconnect, and the ``channel_update`` and
``chat_activity`` handlers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

import asyncpg

if TYPE_CHECKING:
    from streamsync.components.channel_editor import ChannelEditor
    from streamsync.components.stream_state import StreamStateMachine
    from streamsync.core.context import SyncContext

LOGGER = logging.getLogger("Sync.PgListener")

CHANNEL_UPDATE = "channel_update"
CHAT_ACTIVITY = "chat_activity"


async def _detach(
    pool: asyncpg.Pool, connection: asyncpg.Connection, channel: str, handler: Callable
) -> None:
    """Remove the listener and hand the connection back, terminating it if release fails."""
    try:
        await connection.remove_listener(channel, handler)
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        LOGGER.debug(f"remove_listener('{channel}') failed: {e}")
    try:
        await pool.release(connection)
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
        connection.terminate()


async def pg_listen(
    pool: asyncpg.Pool,
    channel: str,
    handler: Callable[..., Coroutine[Any, Any, None] | None],
    *,
    keepalive_interval: int = 30,
    reconnect_delay: int = 10,
) -> None:
    """Listen on a PostgreSQL NOTIFY channel until cancelled.

    Args:
        pool: asyncpg connection pool.
        channel: NOTIFY channel name.
        handler: Callback ``(connection, pid, channel, payload)``.
        keepalive_interval: Seconds between keepalive pings, short enough that
            transaction poolers don't drop the idle LISTEN connection.
        reconnect_delay: Seconds to wait before reconnecting after an error.
    """
    while True:
        connection: asyncpg.Connection | None = None
        try:
            connection = await pool.acquire()
            await connection.add_listener(channel, handler)
            LOGGER.info(f"PostgreSQL LISTEN active on '{channel}' channel")
            while True:
                await asyncio.sleep(keepalive_interval)
                await connection.execute("SELECT 1")
        except asyncio.CancelledError:
            LOGGER.info(f"PostgreSQL LISTEN '{channel}' shutting down...")
            if connection is not None:
                await _detach(pool, connection, channel, handler)
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            LOGGER.error(f"Error in pg_listen('{channel}'): {e}")
            LOGGER.warning(f"Reconnecting to PostgreSQL LISTEN '{channel}' in {reconnect_delay}s...")
            if connection is not None:
                connection.terminate()
            await asyncio.sleep(reconnect_delay)


class ChannelUpdateListener:
    """Runs ``setTitleAndGame`` for ``{"title"?, "game"?, "sender"?}`` notifications."""

    def __init__(self, editor: ChannelEditor) -> None:
        self.editor = editor
        self._pending: set[asyncio.Task] = set()

    def parse(self, payload: str) -> dict[str, str | None] | None:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            LOGGER.warning(f"Ignoring malformed {CHANNEL_UPDATE} payload: {payload!r}")
            return None
        if not isinstance(data, dict) or not (data.get("title") or data.get("game")):
            LOGGER.warning(f"Ignoring {CHANNEL_UPDATE} payload without title or game: {payload!r}")
            return None
        return {"title": data.get("title"), "game": data.get("game"), "sender": data.get("sender")}

    def __call__(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        request = self.parse(payload)
        if request is None:
            return
        LOGGER.info(f"Channel update requested by {request['sender'] or 'dashboard'}")
        task = asyncio.create_task(self.editor.set_title_and_game(**request))
        self._pending.add(task)
        task.add_done_callback(self._done)

    def _done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            LOGGER.error(f"Channel update failed: {task.exception()}")

    async def run(self, pool: asyncpg.Pool) -> None:
        await pg_listen(pool, CHANNEL_UPDATE, self)


class ChatActivityListener:
    """Counts chat lines and first-time chatters reported by the chat bot.

    Feeds the ``chat_messages`` and ``new_chatters`` columns of the stats
    snapshots. Payload: ``{"username": ..., "new_chatter": bool}``.
    """

    def __init__(self, ctx: SyncContext, machine: StreamStateMachine) -> None:
        self.ctx = ctx
        self.machine = machine

    def __call__(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            LOGGER.warning(f"Ignoring malformed {CHAT_ACTIVITY} payload: {payload!r}")
            return
        if not isinstance(data, dict):
            LOGGER.warning(f"Ignoring {CHAT_ACTIVITY} payload: {payload!r}")
            return

        self.ctx.chat_lines += 1
        if data.get("new_chatter"):
            self.machine.record_new_chatter()
            LOGGER.debug(f"New chatter: {data.get('username')}")

    async def run(self, pool: asyncpg.Pool) -> None:
        await pg_listen(pool, CHAT_ACTIVITY, self)
