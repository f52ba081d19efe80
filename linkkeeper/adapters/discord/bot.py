"""Discord channel routing helpers.

``ChannelFilter`` restricts which channels the bot answers in, configured via
the ``LINKKEEPER_CHANNELS`` environment variable.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelFilter:
    """Allow-list of channel ids; an empty list serves every channel."""

    allowed: FrozenSet[str] = field(default_factory=frozenset)

    def allows(self, channel_id: str) -> bool:
        return not self.allowed or channel_id in self.allowed

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "ChannelFilter":
        env = os.environ if env is None else env
        raw = env.get("LINKKEEPER_CHANNELS", "")
        allowed = set()
        for item in raw.split(","):
            item = item.strip()
            if not item:
                continue
            if not item.isdigit():
                logger.warning("Invalid channel id %s in LINKKEEPER_CHANNELS", item)
                continue
            allowed.add(item)
        return ChannelFilter(allowed=frozenset(allowed))
