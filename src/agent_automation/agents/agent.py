"""Agent runtime: one LLM conversation turn with tool use and thread memory."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agent_automation.agents.config import AgentConfig
from agent_automation.agents.tools import Tool, dump_tool_result
from agent_automation.errors import AgentError, ToolExecutionError
from agent_automation.llm.provider import LLMProvider
from agent_automation.storage.models import StoredMessage, Thread

if TYPE_CHECKING:
    from agent_automation.storage.base import Storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolInvocation:
    name: str
    arguments: dict[str, Any]
    result: Any = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class AgentResponse:
    text: str
    thread_id: str | None
    steps: int
    tool_calls: list[ToolInvocation] = field(default_factory=list)


class Agent:
    """A registered agent bound to its LLM provider, tools, and storage.

    The agent is stateless between calls; conversation history lives in the
    storage thread named by `thread_id`.
    """

    def __init__(
        self,
        config: AgentConfig,
        *,
        llm: LLMProvider,
        tools: list[Tool] | None = None,
        storage: Storage | None = None,
    ) -> None:
        self.config = config
        self.llm = llm
        self.tools = {t.name: t for t in tools or []}
        self.storage = storage

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def memory_enabled(self) -> bool:
        memory = self.config.memory
        return bool(memory and memory.enabled and self.storage is not None)

    def _history(self, thread_id: str | None) -> list[dict[str, Any]]:
        if not thread_id or not self.memory_enabled:
            return []
        assert self.storage is not None and self.config.memory is not None
        limit = self.config.memory.last_messages
        return [m.to_chat_message() for m in self.storage.list_messages(thread_id, limit=limit)]

    def _remember(
        self, thread_id: str | None, resource_id: str | None, user: str, answer: str
    ) -> None:
        if not thread_id or not self.memory_enabled:
            return
        assert self.storage is not None
        if self.storage.get_thread(thread_id) is None:
            self.storage.save_thread(Thread(id=thread_id, resource_id=resource_id))
        self.storage.append_messages(
            thread_id,
            [
                StoredMessage(thread_id=thread_id, role="user", content=user),
                StoredMessage(thread_id=thread_id, role="assistant", content=answer),
            ],
        )

    def generate(
        self,
        message: str,
        *,
        thread_id: str | None = None,
        resource_id: str | None = None,
        max_steps: int = 5,
    ) -> AgentResponse:
        """Answer `message`, calling tools as the model requests.

        Raises:
            AgentError: If the model keeps requesting tools after `max_steps` calls.
        """
        messages: list[dict[str, Any]] = [{"role": "system", "content": self.config.instructions}]
        messages.extend(self._history(thread_id))
        messages.append({"role": "user", "content": message})

        declarations = [t.to_openai_schema() for t in self.tools.values()] or None
        invocations: list[ToolInvocation] = []

        for step in range(1, max_steps + 1):
            completion = self.llm.complete(messages, tools=declarations)
            if not completion.tool_calls:
                self._remember(thread_id, resource_id, message, completion.content)
                logger.info(
                    "Agent answered",
                    extra={"agent": self.name, "steps": step, "tool_calls": len(invocations)},
                )
                return AgentResponse(
                    text=completion.content,
                    thread_id=thread_id,
                    steps=step,
                    tool_calls=invocations,
                )

            messages.append(
                {
                    "role": "assistant",
                    "content": completion.content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": dump_tool_result(call.arguments),
                            },
                        }
                        for call in completion.tool_calls
                    ],
                }
            )
            for call in completion.tool_calls:
                invocation = self._invoke_tool(call.name, call.arguments)
                invocations.append(invocation)
                if invocation.error is not None:
                    payload = {"error": invocation.error}
                else:
                    payload = invocation.result
                messages.append(
                    {"role": "tool", "tool_call_id": call.id, "content": dump_tool_result(payload)}
                )

        raise AgentError(f"Agent {self.name!r} exceeded {max_steps} steps without an answer")

    def _invoke_tool(self, name: str, arguments: dict[str, Any]) -> ToolInvocation:
        tool = self.tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool", extra={"agent": self.name, "tool": name})
            return ToolInvocation(name=name, arguments=arguments, error=f"Unknown tool: {name}")
        try:
            result = tool.invoke(arguments)
        except ToolExecutionError as e:
            logger.warning(
                "Tool call failed", extra={"agent": self.name, "tool": name, "error": str(e)}
            )
            return ToolInvocation(name=name, arguments=arguments, error=str(e))
        return ToolInvocation(name=name, arguments=arguments, result=result)
