"""Tests for the completion client."""
from types import SimpleNamespace
from unittest.mock import Mock, patch

import httpx
import openai
import pytest

from linkkeeper.config import Settings
from linkkeeper.llm_client import CompletionClient, CompletionError, LLMConfig, extract_content
from linkkeeper.models import ChatTurn

TURNS = [
    ChatTurn(role="system", content="Be precise and concise."),
    ChatTurn(role="user", content="What is RSS?"),
]


def _response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client_returning(value=None, error=None):
    create = Mock(return_value=value, side_effect=error)
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create))), create


def test_llm_config_from_settings():
    """Environment overrides reach the client through Settings only."""
    settings = Settings.from_dict(
        {"llm": {"model": "sonar-pro"}},
        env={
            "LLM_API_BASE": "http://test:8080/v1",
            "LLM_TIMEOUT": "not-a-number",
            "LLM_MODE": "mock",
        },
    )
    config = LLMConfig.from_settings(settings, "test-key")

    assert config.api_base == "http://test:8080/v1"
    assert config.api_key == "test-key"
    assert config.model_name == "sonar-pro"
    # A malformed timeout falls back to the default instead of raising.
    assert config.timeout == 60.0
    assert config.mock_mode is True


def test_llm_config_defaults():
    config = LLMConfig()
    assert config.api_base == "https://api.perplexity.ai"
    assert config.model_name == "sonar"
    assert config.mock_mode is False


def test_openai_client_built_without_retries():
    config = LLMConfig(api_key="secret", api_base="https://api.perplexity.ai", timeout=5)
    with patch("linkkeeper.llm_client.openai.OpenAI") as mock_openai:
        CompletionClient(config)

    mock_openai.assert_called_once_with(
        api_key="secret",
        base_url="https://api.perplexity.ai",
        timeout=5,
        max_retries=0,
    )


def test_complete_sends_model_and_messages():
    fake, create = _client_returning(_response("  RSS is a feed format.  "))
    client = CompletionClient(LLMConfig(api_key="k", model_name="sonar"), client=fake)

    answer = client.complete(TURNS)

    assert answer == "RSS is a feed format."
    create.assert_called_once_with(
        model="sonar",
        messages=[
            {"role": "system", "content": "Be precise and concise."},
            {"role": "user", "content": "What is RSS?"},
        ],
    )


@pytest.mark.parametrize(
    "response",
    [
        SimpleNamespace(choices=[]),
        SimpleNamespace(),
        SimpleNamespace(choices=[SimpleNamespace()]),
        _response(None),
        _response("   "),
        _response({"text": "wrong shape"}),
    ],
)
def test_malformed_response_is_typed_failure(response):
    with pytest.raises(CompletionError):
        extract_content(response)


def test_connection_error_becomes_completion_error():
    request = httpx.Request("POST", "https://api.perplexity.ai/chat/completions")
    fake, _ = _client_returning(error=openai.APIConnectionError(request=request))
    client = CompletionClient(LLMConfig(api_key="k"), client=fake)

    with pytest.raises(CompletionError):
        client.complete(TURNS)


def test_bad_status_becomes_completion_error():
    request = httpx.Request("POST", "https://api.perplexity.ai/chat/completions")
    response = httpx.Response(503, request=request)
    error = openai.APIStatusError("unavailable", response=response, body=None)
    fake, _ = _client_returning(error=error)
    client = CompletionClient(LLMConfig(api_key="k"), client=fake)

    with pytest.raises(CompletionError, match="503"):
        client.complete(TURNS)


def test_empty_turns_rejected():
    fake, create = _client_returning(_response("unused"))
    client = CompletionClient(LLMConfig(api_key="k"), client=fake)

    with pytest.raises(CompletionError):
        client.complete([])
    create.assert_not_called()


def test_mock_mode_needs_no_network():
    client = CompletionClient(LLMConfig(mock_mode=True))
    assert client.client is None
    assert client.complete(TURNS) == "[MOCK] What is RSS?"
