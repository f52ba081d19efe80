"""Core data models for LinkKeeper."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Intent(str, Enum):
    LIST = "list"
    RANDOM = "random"
    SUMMARIZE = "summarize"
    SAVE = "save"
    RSS = "rss"
    EXPLICIT_COMPLETION = "explicit_completion"
    DEFAULT_COMPLETION = "default_completion"

    @property
    def is_completion(self) -> bool:
        return self in (Intent.EXPLICIT_COMPLETION, Intent.DEFAULT_COMPLETION)


@dataclass(frozen=True)
class Command:
    """A classified inbound message."""

    intent: Intent
    argument: str = ""


@dataclass(frozen=True)
class Reply:
    """Outbound text produced for one inbound message."""

    text: str
    success: bool = True


@dataclass(frozen=True)
class SavedLink:
    id: int
    url: str


@dataclass(frozen=True)
class InboundMessage:
    """Transport-neutral view of a chat message."""

    channel_id: str
    sender_id: str
    text: str
    is_bot: bool = False


@dataclass(frozen=True)
class ChatTurn:
    role: str
    content: str

    def as_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class FeedEntry:
    title: str
    description: str
    link: str

    @property
    def description_or_link(self) -> str:
        return self.description or self.link


@dataclass
class Feed:
    url: str
    title: Optional[str] = None
    entries: List[FeedEntry] = field(default_factory=list)
