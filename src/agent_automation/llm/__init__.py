"""LLM package initialization."""

from agent_automation.llm.factory import LLMFactory, parse_model_selector
from agent_automation.llm.provider import Completion, LLMProvider, ToolCall

__all__ = [
    "Completion",
    "LLMFactory",
    "LLMProvider",
    "ToolCall",
    "parse_model_selector",
]
