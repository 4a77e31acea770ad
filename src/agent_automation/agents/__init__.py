"""Agent declarations, tools, and the agent runtime."""

from agent_automation.agents.agent import Agent, AgentResponse, ToolInvocation
from agent_automation.agents.config import AgentConfig, MemoryConfig
from agent_automation.agents.tools import Tool, tool

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentResponse",
    "MemoryConfig",
    "Tool",
    "ToolInvocation",
    "tool",
]
