"""Outbound chat replies for the sync engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from streamsync.core.errors import SyncError

if TYPE_CHECKING:
    from streamsync.core.context import SyncContext
    from streamsync.services.helix import HelixClient

LOGGER = logging.getLogger("Sync.Chat")


class ChatSink:
    """Sends a message to the broadcaster's chat as the bot, addressed to *sender*."""

    def __init__(self, ctx: SyncContext, api: HelixClient, bot_id: str) -> None:
        self.ctx = ctx
        self.api = api
        self.bot_id = bot_id

    async def send_message(self, message: str, sender: str | None = None) -> bool:
        text = f"@{sender} {message}" if sender else message
        channel_id = await self.ctx.channel.wait()
        try:
            await self.api.send_chat_message(channel_id, self.bot_id, text)
        except SyncError as e:
            LOGGER.warning(f"Chat message not delivered: {e}")
            return False
        LOGGER.info(f"Chat: {text}")
        return True
