"""agent-automation.

Declare LLM-backed agents, multi-step workflows, cron and webhook triggers,
and a storage backend on an :class:`Application`, then serve it with the
``agent-automation dev`` CLI.
"""

__version__ = "0.1.0"

from agent_automation.agents import AgentConfig, MemoryConfig, Tool, tool
from agent_automation.application import Application
from agent_automation.config import AppSettings
from agent_automation.triggers import CronTrigger, WebhookTrigger
from agent_automation.workflows import RetryPolicy, Step, StepContext, Workflow, agent_step, step

__all__ = [
    "AgentConfig",
    "AppSettings",
    "Application",
    "CronTrigger",
    "MemoryConfig",
    "RetryPolicy",
    "Step",
    "StepContext",
    "Tool",
    "WebhookTrigger",
    "Workflow",
    "__version__",
    "agent_step",
    "step",
    "tool",
]
