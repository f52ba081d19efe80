"""Message dispatch: turns each inbound chat message into exactly one reply."""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .commands import parse_command
from .dedup import DedupCache
from .feeds import FeedClient, FetchError
from .llm_client import CompletionClient, CompletionError
from .models import ChatTurn, Command, FeedEntry, InboundMessage, Intent, Reply, SavedLink
from .state import LinkStore, StoreError
from .telemetry import TelemetryCollector, track_duration
from .telemetry_decorator import track_intent

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "Be precise and concise."
DEFAULT_SUMMARY_PREFIX = "Summarize this article: "

NO_LINKS_SAVED = "No hyperlinks saved"
NO_LINKS_AVAILABLE = "No hyperlinks available"
LIST_HEADER = "Saved Hyperlinks:"
RSS_HEADER = "RSS Summary:"
SAVE_USAGE = "Usage: !save <url>"
RSS_USAGE = "Usage: !rss <url>"
QUERY_USAGE = "Usage: !perplexity <query>"
COMPLETION_ERROR_PREFIX = "Error communicating with Perplexity API"


class Transport(Protocol):
    def send(self, channel_id: str, text: str) -> None: ...


class LinkService:
    """Classifies inbound messages and orchestrates the matching side effects.

    Collaborators are injected so the service can run against fakes. Replies
    are built by :meth:`respond`; :meth:`handle` additionally delivers the
    reply through the transport. Neither method lets an exception escape.
    """

    def __init__(
        self,
        store: LinkStore,
        feeds: FeedClient,
        completions: CompletionClient,
        transport: Transport,
        *,
        dedup: Optional[DedupCache] = None,
        telemetry: Optional[TelemetryCollector] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        summary_prefix: str = DEFAULT_SUMMARY_PREFIX,
    ) -> None:
        self.store = store
        self.feeds = feeds
        self.completions = completions
        self.transport = transport
        self.dedup = dedup if dedup is not None else DedupCache()
        self.telemetry = telemetry
        self.system_prompt = system_prompt
        self.summary_prefix = summary_prefix
        self._handlers: Dict[Intent, Callable[[InboundMessage, Command], Reply]] = {
            Intent.SAVE: self._handle_save,
            Intent.LIST: self._handle_list,
            Intent.RANDOM: self._handle_random,
            Intent.SUMMARIZE: self._handle_summarize,
            Intent.RSS: self._handle_rss,
            Intent.EXPLICIT_COMPLETION: self._handle_completion,
            Intent.DEFAULT_COMPLETION: self._handle_completion,
        }

    # Entry points ------------------------------------------------------
    def handle(self, msg: InboundMessage) -> None:
        reply = self.respond(msg)
        if reply is None:
            return
        try:
            self.transport.send(msg.channel_id, reply.text)
        except Exception:
            logger.exception("Failed to deliver reply to channel %s", msg.channel_id)

    def respond(self, msg: InboundMessage) -> Optional[Reply]:
        if msg.is_bot:
            logger.debug("Ignoring automated message from %s", msg.sender_id)
            return None
        try:
            command = parse_command(msg.text)
            logger.info(
                "Handling %s from %s in channel %s",
                command.intent.value,
                msg.sender_id,
                msg.channel_id,
            )
            return self._handlers[command.intent](msg, command)
        except Exception as exc:
            logger.exception("Unexpected failure handling message from %s", msg.sender_id)
            return Reply(f"Error handling message: {exc}", success=False)

    # Link store intents ------------------------------------------------
    @track_intent
    def _handle_save(self, msg: InboundMessage, command: Command) -> Reply:
        url = command.argument
        if not url:
            return Reply(SAVE_USAGE, success=False)
        try:
            self.store.append(url)
        except StoreError as exc:
            logger.warning("Failed to save link %s: %s", url, exc)
            return Reply(f"Error saving link: {exc}", success=False)
        return Reply(f"Link saved: {url}")

    @track_intent
    def _handle_list(self, msg: InboundMessage, command: Command) -> Reply:
        try:
            urls = self.store.list_all()
        except StoreError as exc:
            logger.warning("Failed to list links: %s", exc)
            return Reply(f"Error listing links: {exc}", success=False)
        if not urls:
            return Reply(NO_LINKS_SAVED)
        return Reply("\n".join([LIST_HEADER, *urls]))

    def _pick_link(self) -> Tuple[Optional[SavedLink], Optional[Reply]]:
        try:
            link = self.store.pick_random_and_remove()
        except StoreError as exc:
            logger.warning("Failed to pick random link: %s", exc)
            return None, Reply(f"Error fetching random link: {exc}", success=False)
        if link is None:
            return None, Reply(NO_LINKS_AVAILABLE)
        return link, None

    @track_intent
    def _handle_random(self, msg: InboundMessage, command: Command) -> Reply:
        link, failure = self._pick_link()
        if failure is not None:
            return failure
        return Reply(f"Random Link: {link.url}")

    # Feed intents ------------------------------------------------------
    def _summary_prompt(self, entry: FeedEntry) -> str:
        return f"{self.summary_prefix}{entry.description_or_link}"

    @track_intent
    def _handle_summarize(self, msg: InboundMessage, command: Command) -> Reply:
        link, failure = self._pick_link()
        if failure is not None:
            return failure
        try:
            with track_duration(self.telemetry, "feed_fetch", intent=command.intent.value):
                entry = self.feeds.first_entry(link.url)
        except FetchError as exc:
            logger.warning("Failed to fetch feed %s: %s", link.url, exc)
            return Reply(f"Error fetching feed {link.url}: {exc}", success=False)

        try:
            summary = self._complete(command.intent, self._summary_prompt(entry))
        except CompletionError as exc:
            return Reply(f"{COMPLETION_ERROR_PREFIX}: {exc}", success=False)
        return Reply(f"Summary of {link.url}:\n{summary}")

    @track_intent
    def _handle_rss(self, msg: InboundMessage, command: Command) -> Reply:
        url = command.argument
        if not url:
            return Reply(RSS_USAGE, success=False)
        try:
            with track_duration(self.telemetry, "feed_fetch", intent=command.intent.value):
                feed = self.feeds.fetch(url)
        except FetchError as exc:
            logger.warning("Failed to fetch RSS feed %s: %s", url, exc)
            return Reply(f"Error fetching RSS feed: {exc}", success=False)
        if not feed.entries:
            return Reply(f"No entries found in feed {url}")
        lines: List[str] = [RSS_HEADER]
        for entry in feed.entries:
            lines.append(f"Title: {entry.title}")
            lines.append(f"Link: {entry.link}")
        return Reply("\n".join(lines))

    # Completion intents ------------------------------------------------
    def _complete(self, intent: Intent, prompt: str) -> str:
        turns = [
            ChatTurn(role="system", content=self.system_prompt),
            ChatTurn(role="user", content=prompt),
        ]
        timer = track_duration(self.telemetry, "completion", intent=intent.value)
        try:
            with timer:
                answer = self.completions.complete(turns)
        except CompletionError as exc:
            logger.warning("Completion request failed: %s", exc)
            self._track_llm(intent, False, timer.duration_ms, error=str(exc))
            raise
        self._track_llm(intent, True, timer.duration_ms)
        return answer

    def _track_llm(
        self,
        intent: Intent,
        success: bool,
        duration_ms: float,
        *,
        cached: bool = False,
        error: Optional[str] = None,
    ) -> None:
        if self.telemetry is None:
            return
        self.telemetry.track_llm_activity(
            intent.value,
            success,
            duration_ms,
            cached=cached,
            error=error,
        )

    @track_intent
    def _handle_completion(self, msg: InboundMessage, command: Command) -> Reply:
        query = command.argument
        if not query:
            return Reply(QUERY_USAGE, success=False)
        with self.dedup.guard(msg.sender_id):
            cached = self.dedup.lookup(msg.sender_id, query)
            if cached is not None:
                logger.info("Repeated query from %s; reusing previous answer", msg.sender_id)
                self._track_llm(command.intent, True, 0.0, cached=True)
                return Reply(cached)
            try:
                answer = self._complete(command.intent, query)
            except CompletionError as exc:
                return Reply(f"{COMPLETION_ERROR_PREFIX}: {exc}", success=False)
            self.dedup.remember(msg.sender_id, query, answer)
        return Reply(answer)


__all__ = ["LinkService", "Transport"]
