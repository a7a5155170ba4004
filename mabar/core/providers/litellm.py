"""LiteLLM provider — thin wrapper that returns LangChain AIMessage.

Agents call the module-level ``achat`` facade; tests patch it.
"""

from __future__ import annotations

import os
from typing import Any

import litellm
from langchain_core.messages import AIMessage
from loguru import logger

from mabar.core.config.schema import Config
from mabar.core.providers.base import BaseLLMProvider

# Suppress litellm noise
litellm.suppress_debug_info = True

ERROR_PREFIX = "Error calling LLM:"


class LiteLLMProvider(BaseLLMProvider):
    """LiteLLM-backed provider (gemini/*, openai/*, anthropic/*, ...)."""

    def __init__(self, config: Config | None = None) -> None:
        if config is not None:
            setup_provider(config)

    async def achat(
        self,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        api_base: str | None = None,
        response_format: dict[str, Any] | None = None,
    ) -> AIMessage:
        """Call LiteLLM and return a LangChain AIMessage.

        Provider failures never raise: the error text comes back as the
        message content with ``finish_reason="error"``.
        """
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if api_base:
            kwargs["api_base"] = api_base
        if response_format:
            kwargs["response_format"] = response_format

        try:
            response = await litellm.acompletion(**kwargs)
            return self._to_ai_message(response)
        except Exception as e:
            logger.error(f"LLM error: {e}")
            return AIMessage(
                content=f"{ERROR_PREFIX} {e}",
                response_metadata={"finish_reason": "error"},
            )

    @staticmethod
    def _to_ai_message(response: Any) -> AIMessage:
        """Convert litellm response to LangChain AIMessage."""
        choice = response.choices[0]
        msg = choice.message
        usage = getattr(response, "usage", None)
        return AIMessage(
            content=msg.content or "",
            response_metadata={
                "finish_reason": choice.finish_reason or "stop",
                "usage": {
                    "prompt_tokens": getattr(usage, "prompt_tokens", 0),
                    "completion_tokens": getattr(usage, "completion_tokens", 0),
                    "total_tokens": getattr(usage, "total_tokens", 0),
                },
            },
        )


_default = LiteLLMProvider()


def setup_provider(config: Config) -> None:
    """Set env vars for LiteLLM from config. Call once at startup."""
    for env, val in [
        ("GEMINI_API_KEY", config.providers.gemini.api_key),
        ("OPENAI_API_KEY", config.providers.openai.api_key),
        ("ANTHROPIC_API_KEY", config.providers.anthropic.api_key),
        ("OPENROUTER_API_KEY", config.providers.openrouter.api_key),
        ("GROQ_API_KEY", config.providers.groq.api_key),
    ]:
        if val:
            os.environ.setdefault(env, val)


async def achat(
    messages: list[dict[str, Any]],
    model: str,
    temperature: float = 0.7,
    max_tokens: int = 2048,
    api_base: str | None = None,
    response_format: dict[str, Any] | None = None,
) -> AIMessage:
    """Module-level facade over the default provider."""
    return await _default.achat(
        messages=messages,
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        api_base=api_base,
        response_format=response_format,
    )


def is_error(message: AIMessage) -> bool:
    """True when the message carries a provider failure instead of model output."""
    return message.response_metadata.get("finish_reason") == "error"
