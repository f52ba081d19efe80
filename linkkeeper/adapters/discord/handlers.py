"""Discord message helpers: inbound conversion and outbound delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import discord

from ...models import InboundMessage

logger = logging.getLogger(__name__)

_MAX_MESSAGE_LENGTH = 1900


def clamp_text(text: str, limit: int = _MAX_MESSAGE_LENGTH) -> str:
    """Ensure Discord-compatible message length."""

    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def to_inbound(message: discord.Message) -> InboundMessage:
    """Convert a gateway message into the transport-neutral model."""

    return InboundMessage(
        channel_id=str(message.channel.id),
        sender_id=str(message.author.id),
        text=message.content or "",
        is_bot=bool(message.author.bot or message.webhook_id is not None),
    )


async def post_to_channel(
    client: discord.Client,
    channel_id: int,
    content: str,
    *,
    limit: int = _MAX_MESSAGE_LENGTH,
) -> bool:
    """Send content to a channel, returning whether it was delivered."""

    channel = client.get_channel(channel_id)
    try:
        if channel is None:
            channel = await client.fetch_channel(channel_id)
        await channel.send(clamp_text(content, limit))
    except discord.DiscordException:
        logger.exception("Failed to send message to channel %s", channel_id)
        return False
    return True


class DiscordTransport:
    """Blocking ``send`` usable from worker threads.

    Coroutines are scheduled onto the client's event loop, which must be bound
    with :meth:`bind` before the first send.
    """

    def __init__(
        self,
        client: discord.Client,
        *,
        timeout: float = 15.0,
        max_length: int = _MAX_MESSAGE_LENGTH,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._max_length = max_length
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def send(self, channel_id: str, text: str) -> None:
        if self._loop is None:
            raise RuntimeError("DiscordTransport used before bind()")
        future = asyncio.run_coroutine_threadsafe(
            post_to_channel(self._client, int(channel_id), text, limit=self._max_length),
            self._loop,
        )
        future.result(timeout=self._timeout)
