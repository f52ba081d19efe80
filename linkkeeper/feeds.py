"""RSS/Atom feed fetching."""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

import feedparser
import requests

from .models import Feed, FeedEntry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
MAX_FEED_BYTES = 5 * 1024 * 1024
_CHUNK_SIZE = 16 * 1024


class FetchError(RuntimeError):
    """Raised when a feed cannot be downloaded or parsed."""


def _entry_text(entry, key: str) -> str:
    value = entry.get(key)
    if value is None:
        return ""
    return str(value).strip()


class FeedClient:
    """Downloads a feed over HTTP and parses it with feedparser.

    ``timeout`` bounds the whole download, not just each socket read: the
    body is read on a helper thread and the caller stops waiting once the
    deadline passes. Bodies larger than ``max_bytes`` are rejected.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = "LinkKeeper",
        session: Optional[requests.Session] = None,
        max_bytes: int = MAX_FEED_BYTES,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_bytes = max_bytes
        self._session = session or requests.Session()

    def fetch(self, url: str) -> Feed:
        content = self._download(url)
        parsed = feedparser.parse(content)
        if parsed.get("bozo") and not parsed.entries:
            reason = parsed.get("bozo_exception") or "unparseable content"
            raise FetchError(f"not a valid feed: {reason}")
        if not parsed.get("version") and not parsed.entries:
            raise FetchError("not a valid feed: no RSS or Atom document found")

        entries = [
            FeedEntry(
                title=_entry_text(entry, "title"),
                description=_entry_text(entry, "summary") or _entry_text(entry, "description"),
                link=_entry_text(entry, "link"),
            )
            for entry in parsed.entries
        ]
        title = parsed.feed.get("title") if parsed.get("feed") else None
        logger.info("Fetched feed %s with %d entries", url, len(entries))
        return Feed(url=url, title=title, entries=entries)

    def first_entry(self, url: str) -> FeedEntry:
        feed = self.fetch(url)
        if not feed.entries:
            raise FetchError("feed has no entries")
        return feed.entries[0]

    def _download(self, url: str) -> bytes:
        deadline = time.monotonic() + self.timeout
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="feed-fetch")
        future = executor.submit(self._read_body, url, deadline)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout as exc:
            logger.warning("Feed %s did not finish within %ss", url, self.timeout)
            raise FetchError(f"timed out after {self.timeout:g} seconds") from exc
        except requests.RequestException as exc:
            raise FetchError(str(exc)) from exc
        finally:
            # A stalled reader notices the deadline on its next chunk.
            executor.shutdown(wait=False)

    def _read_body(self, url: str, deadline: float) -> bytes:
        response = self._session.get(
            url,
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            stream=True,
        )
        try:
            response.raise_for_status()
            body = bytearray()
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                body.extend(chunk)
                if len(body) > self.max_bytes:
                    raise FetchError(f"feed larger than {self.max_bytes} bytes")
                if time.monotonic() > deadline:
                    raise FetchError(f"timed out after {self.timeout:g} seconds")
            return bytes(body)
        finally:
            response.close()


__all__ = ["FeedClient", "FetchError", "MAX_FEED_BYTES"]
