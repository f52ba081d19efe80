"""Chat command classification."""
from __future__ import annotations

from typing import Dict, Tuple

from .models import Command, Intent

_EXACT_COMMANDS: Dict[str, Intent] = {
    "!list": Intent.LIST,
    "!listlinks": Intent.LIST,
    "!random": Intent.RANDOM,
    "!randomlink": Intent.RANDOM,
    "!getlink": Intent.RANDOM,
    "!summarize": Intent.SUMMARIZE,
}

# Checked in order; the first matching prefix wins.
_PREFIX_COMMANDS: Tuple[Tuple[str, Intent], ...] = (
    ("!save ", Intent.SAVE),
    ("!savelink ", Intent.SAVE),
    ("!rss ", Intent.RSS),
    ("!perplexity", Intent.EXPLICIT_COMPLETION),
)

# Bare forms that carry an (empty) argument rather than falling through.
_BARE_COMMANDS: Dict[str, Intent] = {
    "!save": Intent.SAVE,
    "!savelink": Intent.SAVE,
    "!rss": Intent.RSS,
}


def parse_command(text: str) -> Command:
    """Classify ``text`` into a :class:`Command`."""

    stripped = text.strip()
    intent = _EXACT_COMMANDS.get(stripped)
    if intent is not None:
        return Command(intent)
    intent = _BARE_COMMANDS.get(stripped)
    if intent is not None:
        return Command(intent, "")
    for prefix, intent in _PREFIX_COMMANDS:
        if stripped.startswith(prefix):
            return Command(intent, stripped[len(prefix):].strip())
    return Command(Intent.DEFAULT_COMPLETION, stripped)


__all__ = ["parse_command"]
