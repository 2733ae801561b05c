"""Twitch platform client for the sync engine.

Every request goes through :meth:`HelixClient.request`, which
- classifies transport failures (refused / timeout / other),
- raises :class:`PlatformError` on non-2xx answers,
- refreshes the shared rate budget from Helix response headers,
- updates the published API connectivity flag,
- appends one call-log record per attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx

from shared.models.api_call import ApiCallRecord
from streamsync.core.context import ApiStatus
from streamsync.core.errors import PlatformError, TransportError

if TYPE_CHECKING:
    from streamsync.core.context import SyncContext

LOGGER = logging.getLogger("Sync.Helix")

HELIX_BASE = "https://api.twitch.tv/helix"
TMI_BASE = "https://tmi.twitch.tv"

HELIX = "helix"
TMI = "tmi"

MAX_IDS_PER_CALL = 100


def parse_timestamp(value: str | None) -> float:
    """RFC 3339 timestamp (``2024-01-01T00:00:00Z``) → epoch seconds, 0 when missing."""
    if not value:
        return 0.0
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


@dataclass
class ApiResponse:
    status: int
    headers: httpx.Headers
    body: Any = None


@dataclass
class Page:
    """One page of a paginated Helix listing (followers, subscriptions) with its ``total``."""

    total: int
    data: list[dict] = field(default_factory=list)


class HelixClient:
    """Shared httpx client bound to the sync context."""

    def __init__(
        self,
        ctx: SyncContext,
        *,
        client_id: str,
        bot_token: str,
        broadcaster_token: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not client_id or not bot_token:
            raise ValueError("Twitch client_id and bot token are required")

        self.ctx = ctx
        self.client_id = client_id
        self.bot_token = bot_token
        self.broadcaster_token = broadcaster_token
        self._http = httpx.AsyncClient(timeout=10.0, transport=transport)

    async def close(self) -> None:
        """Close the shared HTTP client. Call on shutdown."""
        await self._http.aclose()

    @property
    def has_broadcaster_token(self) -> bool:
        return bool(self.broadcaster_token)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, token: str | None) -> dict[str, str]:
        if token is None:
            return {}
        return {"Authorization": f"Bearer {token}", "Client-Id": self.client_id}

    async def request(
        self,
        call: str,
        method: str,
        url: str,
        *,
        params: dict | list | None = None,
        json: dict | None = None,
        family: str = HELIX,
        token: str | None = "",
    ) -> ApiResponse:
        """Issue one request. ``token=""`` means the bot token, ``None`` no auth."""
        if token == "":
            token = self.bot_token

        try:
            response = await self._http.request(
                method, url, params=params, json=json, headers=self._headers(token)
            )
        except httpx.TransportError as e:
            error = TransportError.from_httpx(e)
            LOGGER.error(f"{url} - {error}")
            await self._record(call, family, url, f"{error.kind} {error}")
            raise error from e

        if family == HELIX:
            self.ctx.rate_budget.observe_headers(response.headers)
            self._set_api_status(response.status_code)

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.text

        if not response.is_success:
            message = body.get("message", "") if isinstance(body, dict) else str(body or "")
            error = PlatformError(response.status_code, message)
            LOGGER.error(f"{url} - {error}")
            await self._record(call, family, str(response.url), str(error))
            raise error

        await self._record(call, family, str(response.url), str(response.status_code))
        return ApiResponse(status=response.status_code, headers=response.headers, body=body)

    def _set_api_status(self, status: int) -> None:
        self.ctx.api_status = ApiStatus.CONNECTED if 200 <= status < 300 else ApiStatus.DISCONNECTED

    async def _record(self, call: str, family: str, endpoint: str, code: str) -> None:
        entry = ApiCallRecord(
            timestamp=self.ctx.clock(),
            call=call,
            api=family,
            endpoint=endpoint,
            code=code,
            remaining=self.ctx.rate_budget.remaining if family == HELIX else None,
        )
        try:
            await self.ctx.call_log.record(entry)
        except Exception as e:
            LOGGER.warning(f"Failed to write call log for {call}: {type(e).__name__}: {e}")

    async def _get(self, call: str, path: str, params: dict | list | None = None, **kwargs) -> Any:
        response = await self.request(call, "GET", f"{HELIX_BASE}/{path}", params=params, **kwargs)
        return response.body or {}

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user_by_login(self, login: str, call: str = "getChannelID") -> dict | None:
        body = await self._get(call, "users", {"login": login})
        users = body.get("data") or []
        return users[0] if users else None

    async def get_user_by_id(self, user_id: str, call: str = "updateChannelViews") -> dict | None:
        body = await self._get(call, "users", {"id": user_id})
        users = body.get("data") or []
        return users[0] if users else None

    async def get_users_by_ids(self, user_ids: list[str], call: str = "getUsersByIds") -> list[dict]:
        """Resolve many ids with as few calls as possible (100 ids per request)."""
        users: list[dict] = []
        for start in range(0, len(user_ids), MAX_IDS_PER_CALL):
            chunk = user_ids[start : start + MAX_IDS_PER_CALL]
            body = await self._get(call, "users", {"id": chunk})
            users.extend(body.get("data") or [])
        return users

    # ------------------------------------------------------------------
    # Streams / channel
    # ------------------------------------------------------------------

    async def get_stream(self, channel_id: str) -> dict | None:
        """Active stream for the channel, or ``None`` when offline."""
        body = await self._get("getCurrentStreamData", "streams", {"user_id": channel_id})
        streams = body.get("data") or []
        return streams[0] if streams else None

    async def get_channel(self, channel_id: str, call: str = "getChannelData") -> dict | None:
        body = await self._get(call, "channels", {"broadcaster_id": channel_id})
        channels = body.get("data") or []
        return channels[0] if channels else None

    async def update_channel(
        self, channel_id: str, *, title: str | None = None, game_id: str | None = None
    ) -> dict | None:
        """Apply title and game in one PATCH and return the channel as the platform now reports it."""
        payload: dict[str, str] = {}
        if title is not None:
            payload["title"] = title
        if game_id is not None:
            payload["game_id"] = game_id

        await self.request(
            "setTitleAndGame",
            "PATCH",
            f"{HELIX_BASE}/channels",
            params={"broadcaster_id": channel_id},
            json=payload,
            token=self.broadcaster_token or self.bot_token,
        )
        return await self.get_channel(channel_id, call="setTitleAndGame")

    async def get_hosts(self, channel_id: str) -> list[str]:
        response = await self.request(
            "getChannelHosts",
            "GET",
            f"{TMI_BASE}/hosts",
            params={"include_logins": 1, "target": channel_id},
            family=TMI,
            token=None,
        )
        hosts = (response.body or {}).get("hosts") or []
        return [h["host_login"] for h in hosts if h.get("host_login")]

    async def get_subscriptions(self, channel_id: str) -> Page:
        body = await self._get(
            "getChannelSubscribers",
            "subscriptions",
            {"broadcaster_id": channel_id, "first": 100},
            token=self.broadcaster_token,
        )
        return Page(total=int(body.get("total") or 0), data=body.get("data") or [])

    # ------------------------------------------------------------------
    # Followers
    # ------------------------------------------------------------------

    async def get_followers(self, channel_id: str, first: int = 100) -> Page:
        body = await self._get(
            "getLatest100Followers",
            "channels/followers",
            {"broadcaster_id": channel_id, "first": min(first, 100)},
        )
        return Page(total=int(body.get("total") or 0), data=body.get("data") or [])

    async def get_follow(self, channel_id: str, user_id: str) -> Page:
        body = await self._get(
            "isFollowerUpdate",
            "channels/followers",
            {"broadcaster_id": channel_id, "user_id": user_id},
        )
        return Page(total=int(body.get("total") or 0), data=body.get("data") or [])

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    async def get_game(self, game_id: str) -> dict | None:
        body = await self._get("getGameFromId", "games", {"id": game_id})
        games = body.get("data") or []
        return games[0] if games else None

    async def get_game_by_name(self, name: str) -> dict | None:
        body = await self._get("getGameByName", "games", {"name": name})
        games = body.get("data") or []
        return games[0] if games else None

    async def search_games(self, query: str) -> list[dict]:
        body = await self._get("sendGameFromTwitch", "search/categories", {"query": query})
        return body.get("data") or []

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def send_chat_message(self, channel_id: str, sender_id: str, message: str) -> None:
        await self.request(
            "sendChatMessage",
            "POST",
            f"{HELIX_BASE}/chat/messages",
            json={"broadcaster_id": channel_id, "sender_id": sender_id, "message": message},
        )
