"""OpenAI LLM provider implementation."""

from __future__ import annotations

import json
import logging
from typing import Any

from openai import OpenAI

from agent_automation.errors import ConfigurationError
from agent_automation.llm.provider import Completion, LLMProvider, ToolCall

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI API provider implementation."""

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        base_url: str | None = None,
        temperature: float = 0.7,
        client: OpenAI | None = None,
    ) -> None:
        """Initialize the OpenAI provider.

        Args:
            model: OpenAI model name, e.g. ``gpt-4o-mini``.
            api_key: OpenAI API key.
            base_url: Optional OpenAI-compatible endpoint.
            temperature: Default sampling temperature.
            client: Pre-built client (used by tests).

        Raises:
            ConfigurationError: If API key is not provided.
        """
        if client is None and not api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for OpenAI models")

        self.model = model
        self.temperature = temperature
        self.client = client or OpenAI(api_key=api_key, base_url=base_url)

        logger.info("OpenAI provider initialized", extra={"model": self.model})

    def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> Completion:
        temp = temperature if temperature is not None else self.temperature

        logger.debug(
            "Requesting chat completion",
            extra={"model": self.model, "messages": len(messages), "tools": len(tools or [])},
        )

        if tools:
            kwargs["tools"] = tools
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,  # type: ignore[arg-type]
            max_tokens=max_tokens,
            temperature=temp,
            **kwargs,
        )

        message = response.choices[0].message
        calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=_parse_arguments(call.function.arguments),
            )
            for call in message.tool_calls or []
        ]
        content = message.content or ""
        logger.debug(
            "Chat completion received",
            extra={"model": self.model, "chars": len(content), "tool_calls": len(calls)},
        )
        return Completion(content=content, tool_calls=calls)


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Model returned non-JSON tool arguments", extra={"raw": raw[:200]})
        return {}
    return parsed if isinstance(parsed, dict) else {}
