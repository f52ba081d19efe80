"""Discord transport adapter."""

from __future__ import annotations

from .bot import ChannelFilter
from .handlers import DiscordTransport, clamp_text, post_to_channel, to_inbound

__all__ = ["ChannelFilter", "DiscordTransport", "clamp_text", "post_to_channel", "to_inbound"]
