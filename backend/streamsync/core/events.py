"""Fire-and-forget domain event bus.

Listeners run in-process; when a pool is attached every event is also
published on a PostgreSQL NOTIFY channel so the API / Discord services can
react to it.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Callable
from typing import Any

import asyncpg

LOGGER = logging.getLogger("Sync.Events")

NOTIFY_CHANNEL = "sync_events"

Listener = Callable[[str, Any], Any]


class EventBus:
    def __init__(self, pool: asyncpg.Pool | None = None, channel: str = NOTIFY_CHANNEL) -> None:
        self._pool = pool
        self._channel = channel
        self._listeners: dict[str, list[Listener]] = {}
        self._pending: set[asyncio.Task] = set()

    def on(self, event: str, listener: Listener) -> None:
        """Register *listener* for *event* (``"*"`` receives everything)."""
        self._listeners.setdefault(event, []).append(listener)

    def fire(self, event: str, payload: Any = None) -> None:
        """Dispatch without waiting; listener failures are logged only."""
        LOGGER.debug(f"Event fired: {event} {payload if payload is not None else ''}")
        for listener in self._listeners.get(event, []) + self._listeners.get("*", []):
            try:
                result = listener(event, payload)
            except Exception as e:
                LOGGER.exception(f"Listener for '{event}' failed: {e}")
                continue
            if inspect.isawaitable(result):
                self._track(asyncio.ensure_future(result), event)

        if self._pool is not None:
            self._track(asyncio.ensure_future(self._publish(event, payload)), event)

    def _track(self, task: asyncio.Future, event: str) -> None:
        self._pending.add(task)  # type: ignore[arg-type]

        def _done(t: asyncio.Future) -> None:
            self._pending.discard(t)  # type: ignore[arg-type]
            if not t.cancelled() and t.exception() is not None:
                LOGGER.error(f"Async listener for '{event}' failed: {t.exception()}")

        task.add_done_callback(_done)

    async def _publish(self, event: str, payload: Any) -> None:
        assert self._pool is not None
        message = json.dumps({"event": event, "payload": payload}, default=str)
        async with self._pool.acquire() as conn:
            await conn.execute("SELECT pg_notify($1, $2)", self._channel, message)

    async def drain(self) -> None:
        """Wait for in-flight async listeners (shutdown / tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
