"""Completion client for the Perplexity (OpenAI-compatible) chat API."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import openai

from .config import Settings
from .models import ChatTurn

logger = logging.getLogger(__name__)


class CompletionError(RuntimeError):
    """Raised when the remote API fails or returns an unexpected shape."""


@dataclass
class LLMConfig:
    """Configuration for the completion client."""
    api_base: str = "https://api.perplexity.ai"
    api_key: str = ""
    model_name: str = "sonar"
    timeout: float = 60.0
    mock_mode: bool = False

    @classmethod
    def from_settings(cls, settings: Settings, api_key: str) -> "LLMConfig":
        """Build from loaded settings; the key comes from the bot credentials."""
        return cls(
            api_base=settings.llm_api_base,
            api_key=api_key,
            model_name=settings.llm_model,
            timeout=settings.llm_timeout,
            mock_mode=settings.llm_mock_mode,
        )


def extract_content(response: Any) -> str:
    """Return ``choices[0].message.content`` or raise ``CompletionError``."""

    choices = getattr(response, "choices", None)
    if not choices:
        raise CompletionError("response contained no choices")
    message = getattr(choices[0], "message", None)
    if message is None:
        raise CompletionError("first choice has no message")
    content = getattr(message, "content", None)
    if not isinstance(content, str) or not content.strip():
        raise CompletionError("first choice has no text content")
    return content.strip()


class CompletionClient:
    """Issues single, non-retried chat completion requests."""

    def __init__(self, config: Optional[LLMConfig] = None, client: Any = None):
        self.config = config or LLMConfig()
        if self.config.mock_mode:
            self.client = None
            logger.info("Completion client initialised in mock mode")
            return
        self.client = client or openai.OpenAI(
            api_key=self.config.api_key,
            base_url=self.config.api_base,
            timeout=self.config.timeout,
            max_retries=0,
        )
        logger.info(f"Completion client initialized with base URL: {self.config.api_base}")

    def complete(self, turns: Sequence[ChatTurn]) -> str:
        if not turns:
            raise CompletionError("no messages to send")
        if self.config.mock_mode:
            return self._mock_completion(turns)

        messages = [turn.as_dict() for turn in turns]
        try:
            response = self.client.chat.completions.create(
                model=self.config.model_name,
                messages=messages,
            )
        except openai.APIStatusError as exc:
            raise CompletionError(f"API returned status {exc.status_code}") from exc
        except openai.APIError as exc:
            raise CompletionError(str(exc)) from exc
        return extract_content(response)

    def _mock_completion(self, turns: Sequence[ChatTurn]) -> str:
        """Return deterministic text in mock mode."""
        return f"[MOCK] {turns[-1].content}"


__all__ = ["CompletionClient", "CompletionError", "LLMConfig", "extract_content"]
