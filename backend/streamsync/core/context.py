"""Shared, explicitly owned state passed to every sync component."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from shared.models.stats import CurrentStats
from shared.repositories.documents import DocumentStore
from shared.repositories.stats import (
    ApiCallLogRepository,
    CurrentStatsRepository,
    EventListRepository,
    StatsRepository,
)
from shared.repositories.sync_cache import SyncCacheRepository
from shared.repositories.users import UserRepository
from shared.repositories.variables import CustomVariableRepository
from streamsync.core.events import EventBus
from streamsync.core.i18n import Translator
from streamsync.core.rate_limit import RateBudget

if TYPE_CHECKING:
    from streamsync.services.chat import ChatSink


class ApiStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class StreamState(str, Enum):
    OFFLINE = "offline"
    ONLINE = "online"


class ChannelIdentity:
    """One-shot ready signal for the broadcaster's channel id."""

    def __init__(self) -> None:
        self._value: str | None = None
        self._ready = asyncio.Event()

    @property
    def value(self) -> str | None:
        return self._value

    @property
    def resolved(self) -> bool:
        return self._ready.is_set()

    def resolve(self, channel_id: str) -> None:
        self._value = str(channel_id)
        self._ready.set()

    async def wait(self) -> str:
        await self._ready.wait()
        if self._value is None:
            raise RuntimeError("Channel id signalled ready without a value")
        return self._value


@dataclass
class RetryCounter:
    """Consecutive-failure counter bounded by *limit*."""

    limit: int
    count: int = 0

    def increment(self) -> int:
        self.count += 1
        return self.count

    def reset(self) -> None:
        self.count = 0

    @property
    def exhausted(self) -> bool:
        return self.count >= self.limit


@dataclass
class SyncContext:
    broadcaster_username: str
    bot_username: str

    current: CurrentStatsRepository
    cache: SyncCacheRepository
    users: UserRepository
    variables: CustomVariableRepository
    stats_log: StatsRepository
    call_log: ApiCallLogRepository
    eventlist: EventListRepository
    events: EventBus
    translate: Translator

    webhook_streams_enabled: bool = False
    clock: Callable[[], float] = time.time

    stats: CurrentStats = field(default_factory=CurrentStats)
    rate_budget: RateBudget = field(init=False)
    channel: ChannelIdentity = field(default_factory=ChannelIdentity)
    api_status: ApiStatus = ApiStatus.DISCONNECTED
    chat: ChatSink | None = None

    # Follow ids already announced (shared with the EventSub path)
    follow_dedup: set[str] = field(default_factory=set)
    # Set by a manual title/game change, consumed by the next drift check
    changed_manually: bool = False
    # Chat lines seen so far, counted by ChatActivityListener
    chat_lines: int = 0

    def __post_init__(self) -> None:
        self.rate_budget = RateBudget(clock=self.clock)

    @classmethod
    def from_store(
        cls,
        store: DocumentStore,
        *,
        events: EventBus,
        broadcaster_username: str,
        bot_username: str,
        locale: str = "en",
        **kwargs: Any,
    ) -> SyncContext:
        """Wire every repository onto one document store."""
        return cls(
            broadcaster_username=broadcaster_username.lower(),
            bot_username=bot_username.lower(),
            current=CurrentStatsRepository(store),
            cache=SyncCacheRepository(store),
            users=UserRepository(
                store,
                on_change=lambda username, patch: events.fire(
                    "user-changed", {"username": username, "patch": patch}
                ),
            ),
            variables=CustomVariableRepository(store),
            stats_log=StatsRepository(store),
            call_log=ApiCallLogRepository(store),
            eventlist=EventListRepository(store),
            events=events,
            translate=Translator(locale),
            **kwargs,
        )

    def is_channel_account(self, username: str) -> bool:
        """True for the broadcaster and the bot, who never count as followers."""
        return username.lower() in (self.broadcaster_username, self.bot_username)

    def consume_manual_change(self) -> bool:
        """Return and clear the "changed manually" flag."""
        changed, self.changed_manually = self.changed_manually, False
        return changed

    async def load_cached_state(self) -> None:
        """Initialize the snapshot from persisted values at startup."""
        await self.current.load_into(self.stats)
        self.stats.raw_status = await self.cache.raw_status()
        self.stats.game = await self.cache.game()
        await self.current.save("game", self.stats.game)
        channel_id = await self.cache.channel_id()
        if channel_id:
            self.channel.resolve(channel_id)
