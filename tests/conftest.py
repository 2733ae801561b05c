"""Shared fixtures: in-memory document store, fixed clock, mocked Twitch API."""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from shared.repositories.documents import KV_COLLECTION, deep_merge
from streamsync.core.context import SyncContext
from streamsync.core.events import EventBus
from streamsync.services.helix import HelixClient

NOW = 1_700_000_000.0
CHANNEL_ID = "1000"


def _contains(body: dict, filter: dict) -> bool:
    for key, value in filter.items():
        if isinstance(value, dict):
            if not isinstance(body.get(key), dict) or not _contains(body[key], value):
                return False
        elif body.get(key) != value:
            return False
    return True


class MemoryDocumentStore:
    """Same contract as ``DocumentStore`` (containment filters, upsert-merge updates)."""

    def __init__(self) -> None:
        self.collections: dict[str, list[dict]] = {}

    async def get(self, key: str) -> Any:
        doc = await self.find_one(KV_COLLECTION, {"key": key})
        return doc.get("value") if doc else None

    async def set(self, key: str, value: Any) -> None:
        await self.update(KV_COLLECTION, {"key": key}, {"value": value})

    async def find(self, collection: str, filter: dict | None = None) -> list[dict]:
        docs = self.collections.get(collection, [])
        return [copy.deepcopy(d) for d in docs if _contains(d, filter or {})]

    async def find_one(self, collection: str, filter: dict) -> dict | None:
        found = await self.find(collection, filter)
        return found[0] if found else None

    async def insert(self, collection: str, body: dict) -> None:
        self.collections.setdefault(collection, []).append(copy.deepcopy(body))

    async def update(self, collection: str, filter: dict, patch: dict) -> int:
        docs = self.collections.setdefault(collection, [])
        matched = [i for i, d in enumerate(docs) if _contains(d, filter)]
        if not matched:
            docs.append(deep_merge(filter, copy.deepcopy(patch)))
            return 1
        for i in matched:
            docs[i] = deep_merge(docs[i], copy.deepcopy(patch))
        return len(matched)

    async def remove(self, collection: str, filter: dict | None = None) -> int:
        docs = self.collections.get(collection, [])
        kept = [d for d in docs if not _contains(d, filter or {})]
        self.collections[collection] = kept
        return len(docs) - len(kept)


class FakeClock:
    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTwitch:
    """Routes ``(method, path)`` to canned responses and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def route(
        self,
        method: str,
        path: str,
        *,
        status: int = 200,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json=json, headers=headers)

        self.routes[(method, path)] = respond

    def route_handler(
        self, method: str, path: str, handler: Callable[[httpx.Request], httpx.Response]
    ) -> None:
        self.routes[(method, path)] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": f"no route for {request.url.path}"})
        return handler(request)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def fired(events: EventBus) -> list[tuple[str, Any]]:
    received: list[tuple[str, Any]] = []
    events.on("*", lambda event, payload: received.append((event, payload)))
    return received


@pytest.fixture
def ctx(store: MemoryDocumentStore, events: EventBus, clock: FakeClock) -> SyncContext:
    return SyncContext.from_store(
        store,  # type: ignore[arg-type]
        events=events,
        broadcaster_username="Caster",
        bot_username="SyncBot",
        clock=clock,
    )


@pytest.fixture
def twitch() -> FakeTwitch:
    return FakeTwitch()


@pytest.fixture
def api(ctx: SyncContext, twitch: FakeTwitch) -> HelixClient:
    return HelixClient(
        ctx,
        client_id="client",
        bot_token="bot-token",
        broadcaster_token="caster-token",
        transport=httpx.MockTransport(twitch.handle),
    )


def event_names(fired: list[tuple[str, Any]]) -> list[str]:
    return [name for name, _ in fired]
