"""Tests for the Discord transport adapter and message pump."""
from __future__ import annotations

import asyncio
import threading
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import discord
import pytest

from linkkeeper.adapters.discord import (
    ChannelFilter,
    DiscordTransport,
    clamp_text,
    post_to_channel,
    to_inbound,
)
from linkkeeper.config import BotCredentials, Settings
from linkkeeper.discord_bot import LinkKeeperBot, MessagePump
from linkkeeper.models import InboundMessage


def _discord_message(content, *, channel_id=111, author_id=222, bot=False, webhook_id=None):
    return SimpleNamespace(
        content=content,
        channel=SimpleNamespace(id=channel_id),
        author=SimpleNamespace(id=author_id, bot=bot),
        webhook_id=webhook_id,
    )


def test_channel_filter_from_env(monkeypatch):
    monkeypatch.setenv("LINKKEEPER_CHANNELS", "123, 456,not-an-id,,")
    channel_filter = ChannelFilter.from_env()

    assert channel_filter.allowed == frozenset({"123", "456"})
    assert channel_filter.allows("123")
    assert not channel_filter.allows("789")


def test_empty_channel_filter_allows_everything(monkeypatch):
    monkeypatch.delenv("LINKKEEPER_CHANNELS", raising=False)
    assert ChannelFilter.from_env().allows("anything")


def test_clamp_text():
    assert clamp_text("short") == "short"
    clamped = clamp_text("x" * 5000)
    assert len(clamped) == 1900
    assert clamped.endswith("…")
    assert clamp_text("abcdef", limit=4) == "abc…"


def test_to_inbound_maps_identity_fields():
    msg = to_inbound(_discord_message("!list", channel_id=5, author_id=9))
    assert msg == InboundMessage(channel_id="5", sender_id="9", text="!list", is_bot=False)

    assert to_inbound(_discord_message("hi", bot=True)).is_bot
    assert to_inbound(_discord_message("hi", webhook_id=77)).is_bot


@pytest.mark.asyncio
async def test_post_to_channel_uses_cached_channel():
    channel = SimpleNamespace(send=AsyncMock())
    client = SimpleNamespace(get_channel=Mock(return_value=channel), fetch_channel=AsyncMock())

    delivered = await post_to_channel(client, 42, "y" * 3000)

    assert delivered is True
    client.get_channel.assert_called_once_with(42)
    client.fetch_channel.assert_not_called()
    sent = channel.send.await_args.args[0]
    assert len(sent) == 1900


@pytest.mark.asyncio
async def test_post_to_channel_logs_discord_failures():
    channel = SimpleNamespace(send=AsyncMock(side_effect=discord.DiscordException("nope")))
    client = SimpleNamespace(get_channel=Mock(return_value=None), fetch_channel=AsyncMock(return_value=channel))

    assert await post_to_channel(client, 42, "hello") is False
    client.fetch_channel.assert_awaited_once_with(42)


def test_transport_requires_bound_loop():
    transport = DiscordTransport(SimpleNamespace())
    with pytest.raises(RuntimeError):
        transport.send("1", "hello")


@pytest.mark.asyncio
async def test_transport_send_from_worker_thread():
    channel = SimpleNamespace(send=AsyncMock())
    client = SimpleNamespace(get_channel=Mock(return_value=channel), fetch_channel=AsyncMock())
    transport = DiscordTransport(client, timeout=5)
    transport.bind(asyncio.get_running_loop())

    await asyncio.to_thread(transport.send, "42", "hello")

    channel.send.assert_awaited_once_with("hello")


@pytest.mark.asyncio
async def test_message_pump_handles_in_order_with_single_worker():
    handled = []
    active = []
    overlap = []
    lock = threading.Lock()

    def handle(msg):
        with lock:
            if active:
                overlap.append(msg.text)
            active.append(msg.text)
        threading.Event().wait(0.01)
        with lock:
            active.remove(msg.text)
            handled.append(msg.text)

    service = Mock()
    service.handle = Mock(side_effect=handle)
    pump = MessagePump(service)
    pump.start()

    for index in range(5):
        assert pump.submit(InboundMessage("c", "s", f"m{index}"))
    await pump.stop(timeout_seconds=5)

    assert handled == [f"m{index}" for index in range(5)]
    assert overlap == []
    assert pump.submit(InboundMessage("c", "s", "late")) is False


@pytest.mark.asyncio
async def test_bot_filters_before_queueing(tmp_path):
    settings = Settings.from_dict(
        {"store": {"path": str(tmp_path / "links.db")}},
        env={"LLM_MODE": "mock"},
    )
    credentials = BotCredentials(discord_token="t", application_id=1, llm_api_key="")
    bot = LinkKeeperBot(
        settings=settings,
        credentials=credentials,
        channel_filter=ChannelFilter(frozenset({"111"})),
        intents=discord.Intents.none(),
    )
    bot.pump = Mock()

    await bot.on_message(_discord_message("!list", channel_id=111, bot=True))
    await bot.on_message(_discord_message("!list", channel_id=999))
    bot.pump.submit.assert_not_called()

    await bot.on_message(_discord_message("!list", channel_id=111))
    bot.pump.submit.assert_called_once_with(
        InboundMessage(channel_id="111", sender_id="222", text="!list", is_bot=False)
    )
