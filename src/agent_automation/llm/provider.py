"""Abstract base class for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A function call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Completion:
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    This interface allows pluggable LLM backends selected by model string.
    """

    model: str

    @abstractmethod
    def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> Completion:
        """Generate a chat completion that may request tool calls.

        Args:
            messages: Chat messages in OpenAI format.
            tools: Function declarations the model may call.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            **kwargs: Additional provider-specific parameters.

        Returns:
            The completion text and any requested tool calls.
        """

    def generate(self, prompt: str, **kwargs: Any) -> str:
        """Generate text completion from a single prompt."""
        return self.complete([{"role": "user", "content": prompt}], **kwargs).content

    def chat(self, messages: list[dict[str, Any]], **kwargs: Any) -> str:
        """Generate chat completion from messages, ignoring tool calls."""
        return self.complete(messages, **kwargs).content
