"""Per-sender suppression of repeated completion queries."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple


class DedupCache:
    """Remembers each sender's last successful query and its response.

    Holds at most one entry per sender. Entries are never evicted, so memory
    grows with the number of distinct senders seen by the process.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[str, str]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    @contextmanager
    def guard(self, sender_id: str) -> Iterator[None]:
        """Serialise lookup-call-remember sequences for one sender."""
        with self._registry_lock:
            lock = self._locks.setdefault(sender_id, threading.Lock())
        with lock:
            yield

    def lookup(self, sender_id: str, query: str) -> Optional[str]:
        entry = self._entries.get(sender_id)
        if entry is None or entry[0] != query:
            return None
        return entry[1]

    def remember(self, sender_id: str, query: str, response: str) -> None:
        self._entries[sender_id] = (query, response)

    def last_query(self, sender_id: str) -> Optional[str]:
        entry = self._entries.get(sender_id)
        return entry[0] if entry else None


__all__ = ["DedupCache"]
