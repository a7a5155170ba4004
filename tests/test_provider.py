"""Tests for the LiteLLM provider and its module facade."""

import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from langchain_core.messages import AIMessage

from mabar.core.config.schema import Config
from mabar.core.providers import litellm as facade
from mabar.core.providers.litellm import ERROR_PREFIX, LiteLLMProvider


def _make_response(content="hello", finish_reason="stop"):
    """Build a mock litellm completion response."""
    msg = SimpleNamespace(content=content)
    choice = SimpleNamespace(finish_reason=finish_reason, message=msg)
    usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
    return SimpleNamespace(choices=[choice], usage=usage)


# ── LiteLLMProvider.achat ─────────────────────────────────


@pytest.mark.asyncio
async def test_achat_returns_ai_message():
    with patch(
        "mabar.core.providers.litellm.litellm.acompletion",
        new_callable=AsyncMock,
        return_value=_make_response('{"intent": "find_venue"}'),
    ) as mock_completion:
        result = await LiteLLMProvider().achat(
            messages=[{"role": "user", "content": "hi"}],
            model="openai/gpt-test",
            temperature=0.2,
            response_format={"type": "json_object"},
        )

    assert isinstance(result, AIMessage)
    assert result.content == '{"intent": "find_venue"}'
    assert result.response_metadata["usage"]["total_tokens"] == 15
    assert facade.is_error(result) is False

    kwargs = mock_completion.call_args.kwargs
    assert kwargs["model"] == "openai/gpt-test"
    assert kwargs["temperature"] == 0.2
    assert kwargs["response_format"] == {"type": "json_object"}
    assert "api_base" not in kwargs


@pytest.mark.asyncio
async def test_achat_passes_api_base():
    with patch(
        "mabar.core.providers.litellm.litellm.acompletion",
        new_callable=AsyncMock,
        return_value=_make_response(),
    ) as mock_completion:
        await LiteLLMProvider().achat(
            messages=[], model="openrouter/x", api_base="https://openrouter.ai/api/v1"
        )
    assert mock_completion.call_args.kwargs["api_base"] == "https://openrouter.ai/api/v1"
    assert "response_format" not in mock_completion.call_args.kwargs


@pytest.mark.asyncio
async def test_achat_error_becomes_message():
    with patch(
        "mabar.core.providers.litellm.litellm.acompletion",
        new_callable=AsyncMock,
        side_effect=RuntimeError("rate limited"),
    ):
        result = await LiteLLMProvider().achat(messages=[], model="openai/gpt-test")

    assert result.content.startswith(ERROR_PREFIX)
    assert "rate limited" in result.content
    assert facade.is_error(result) is True


@pytest.mark.asyncio
async def test_none_content_is_empty_string():
    with patch(
        "mabar.core.providers.litellm.litellm.acompletion",
        new_callable=AsyncMock,
        return_value=_make_response(content=None, finish_reason=None),
    ):
        result = await facade.achat(messages=[], model="openai/gpt-test")
    assert result.content == ""
    assert result.response_metadata["finish_reason"] == "stop"


# ── setup_provider ────────────────────────────────────────


def test_setup_provider_exports_keys(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    cfg = Config(providers={"gemini": {"api_key": "AIza-test"}})

    facade.setup_provider(cfg)
    assert os.environ["GEMINI_API_KEY"] == "AIza-test"
    assert "GROQ_API_KEY" not in os.environ


def test_setup_provider_keeps_existing_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")
    facade.setup_provider(Config(providers={"openai": {"api_key": "from-config"}}))
    assert os.environ["OPENAI_API_KEY"] == "from-env"
