"""Agent declarations.

These are configuration records only; they hold no runtime state and cannot be
changed after construction.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agent_automation.naming import validate_name


class MemoryConfig(BaseModel):
    """How an agent uses the application's storage for conversation memory."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    last_messages: int = Field(default=10, ge=0, description="Recent messages replayed per call")


class AgentConfig(BaseModel):
    """A prompt, a model selector, tool references, and a memory reference."""

    model_config = ConfigDict(frozen=True)

    name: str
    instructions: str
    model: str | None = Field(
        default=None, description="Model selector; defaults to DEFAULT_MODEL when unset"
    )
    tools: tuple[str, ...] = ()
    memory: MemoryConfig | None = None
    description: str = ""

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        return validate_name(value, "Agent")

    @field_validator("instructions")
    @classmethod
    def _non_empty_instructions(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Agent instructions must not be empty")
        return value

    @field_validator("tools")
    @classmethod
    def _unique_tools(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(value)) != len(value):
            raise ValueError("Agent tools must not contain duplicates")
        return value
