"""Discord bot entry point for LinkKeeper."""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

import discord
from dotenv import load_dotenv

from .adapters.discord import ChannelFilter, DiscordTransport, to_inbound
from .config import BotCredentials, ConfigError, Settings, get_settings
from .feeds import FeedClient
from .llm_client import CompletionClient, LLMConfig
from .models import InboundMessage
from .service import LinkService
from .state import LinkStore
from .telemetry import TelemetryCollector

logger = logging.getLogger(__name__)


class MessagePump:
    """Drains inbound messages through the service with a single worker."""

    def __init__(self, service: LinkService) -> None:
        self._service = service
        self._queue: "asyncio.Queue[Optional[InboundMessage]]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._accepting = False

    @property
    def accepting(self) -> bool:
        return self._accepting

    def start(self) -> None:
        if self._task is not None:
            return
        self._accepting = True
        self._task = asyncio.create_task(self._run(), name="linkkeeper-pump")

    def submit(self, msg: InboundMessage) -> bool:
        if not self._accepting:
            logger.debug("Dropping message from %s; pump is stopped", msg.sender_id)
            return False
        self._queue.put_nowait(msg)
        return True

    async def _run(self) -> None:
        while True:
            msg = await self._queue.get()
            try:
                if msg is None:
                    return
                # Blocking store, feed and completion calls run off the event loop.
                await asyncio.to_thread(self._service.handle, msg)
            except Exception:  # pragma: no cover - handle() already contains failures
                logger.exception("Message worker failed")
            finally:
                self._queue.task_done()

    async def stop(self, *, timeout_seconds: float = 30.0) -> None:
        """Stop accepting messages and wait for queued work to finish."""
        self._accepting = False
        if self._task is None:
            return
        self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Shutdown timed out while draining messages. timeout_seconds=%s", timeout_seconds)
        self._task = None


class LinkKeeperBot(discord.Client):
    """Gateway client that forwards channel messages to :class:`LinkService`."""

    def __init__(
        self,
        *,
        settings: Settings,
        credentials: BotCredentials,
        channel_filter: Optional[ChannelFilter] = None,
        intents: Optional[discord.Intents] = None,
        telemetry: Optional[TelemetryCollector] = None,
    ) -> None:
        if intents is None:
            intents = discord.Intents.default()
            intents.message_content = True
        super().__init__(intents=intents, application_id=credentials.application_id)
        self.settings = settings
        self.channel_filter = channel_filter or ChannelFilter()
        self.telemetry = telemetry
        self.transport = DiscordTransport(
            self,
            timeout=settings.send_timeout,
            max_length=settings.max_message_length,
        )
        self.service = LinkService(
            store=LinkStore(settings.db_path),
            feeds=FeedClient(timeout=settings.feed_timeout, user_agent=settings.feed_user_agent),
            completions=CompletionClient(
                LLMConfig.from_settings(settings, credentials.llm_api_key)
            ),
            transport=self.transport,
            telemetry=telemetry,
            system_prompt=settings.system_prompt,
            summary_prefix=settings.summary_prefix,
        )
        self.pump = MessagePump(self.service)

    async def setup_hook(self) -> None:
        self.transport.bind(asyncio.get_running_loop())
        self.pump.start()
        if self.telemetry is not None:
            self.telemetry.track_system_event("startup", source="discord")

    async def on_ready(self) -> None:
        logger.info("LinkKeeper connected as %s", self.user)

    async def on_message(self, message: discord.Message) -> None:
        inbound = to_inbound(message)
        if inbound.is_bot:
            return
        if not self.channel_filter.allows(inbound.channel_id):
            logger.debug("Ignoring message in unlisted channel %s", inbound.channel_id)
            return
        self.pump.submit(inbound)

    async def close(self) -> None:
        await self.pump.stop()
        if self.telemetry is not None:
            self.telemetry.track_system_event("shutdown", source="discord")
            self.telemetry.flush()
        await super().close()


def build_bot(
    settings: Settings,
    credentials: BotCredentials,
    intents: Optional[discord.Intents] = None,
) -> LinkKeeperBot:
    return LinkKeeperBot(
        settings=settings,
        credentials=credentials,
        channel_filter=ChannelFilter.from_env(),
        intents=intents,
        telemetry=TelemetryCollector(settings.telemetry_db_path),
    )


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = get_settings()
        credentials = BotCredentials.from_env(require_llm_key=not settings.llm_mock_mode)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(f"linkkeeper: {exc}") from exc

    logger.info("Starting LinkKeeper. db=%s model=%s", settings.db_path, settings.llm_model)
    bot = build_bot(settings, credentials)
    bot.run(credentials.discord_token, log_handler=None)


__all__ = ["LinkKeeperBot", "MessagePump", "build_bot", "main"]
