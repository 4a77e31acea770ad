"""The application registry.

An :class:`Application` is the single place agents, tools, workflows, triggers,
and the shared storage handle are registered. The CLI and HTTP server load one
instance (see :mod:`agent_automation.loader`) and serve everything it holds.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError

from agent_automation import __version__
from agent_automation.agents.agent import Agent
from agent_automation.agents.config import AgentConfig
from agent_automation.agents.tools import Tool, tool
from agent_automation.config import AppSettings
from agent_automation.errors import ConfigurationError, NotRegisteredError, RegistrationError
from agent_automation.llm.factory import LLMFactory, parse_model_selector
from agent_automation.llm.provider import LLMProvider
from agent_automation.storage.base import Storage
from agent_automation.storage.factory import create_storage
from agent_automation.triggers.models import CronTrigger, Trigger, WebhookTrigger
from agent_automation.workflows.runner import WorkflowRunner
from agent_automation.workflows.workflow import Workflow

logger = logging.getLogger(__name__)

LLMBuilder = Callable[[str, AppSettings], LLMProvider]


class Application:
    """Registry of everything an agent-automation deployment serves."""

    def __init__(
        self,
        name: str = "agent-automation",
        *,
        settings: AppSettings | None = None,
        storage: Storage | None = None,
        llm_builder: LLMBuilder | None = None,
    ) -> None:
        """Create an empty application.

        Args:
            name: Display name used in health checks and the build manifest.
            settings: Settings; loaded from the environment on first use if None.
            storage: Storage handle; created from ``DATABASE_URL`` on first use if None.
            llm_builder: Builds an LLM provider from a model selector. Defaults to
                :meth:`LLMFactory.create`.
        """
        self.name = name
        self._settings = settings
        self._storage = storage
        self._llm_builder = llm_builder or LLMFactory.create

        self._tools: dict[str, Tool] = {}
        self._agents: dict[str, AgentConfig] = {}
        self._workflows: dict[str, Workflow] = {}
        self._triggers: dict[str, Trigger] = {}

        self._lock = threading.Lock()
        self._agent_cache: dict[str, Agent] = {}
        self._runner: WorkflowRunner | None = None

    def __repr__(self) -> str:
        return (
            f"Application(name={self.name!r}, agents={len(self._agents)}, "
            f"workflows={len(self._workflows)}, triggers={len(self._triggers)})"
        )

    # ==================== shared handles ====================

    @property
    def settings(self) -> AppSettings:
        if self._settings is None:
            self._settings = AppSettings()
        return self._settings

    @property
    def storage(self) -> Storage:
        with self._lock:
            if self._storage is None:
                self._storage = create_storage(self.settings.database_url)
            return self._storage

    @property
    def runner(self) -> WorkflowRunner:
        if self._runner is None:
            self._runner = WorkflowRunner(
                storage=self.storage,
                resolve_workflow=self.get_workflow,
                resolve_agent=self.get_agent,
            )
        return self._runner

    def close(self) -> None:
        if self._storage is not None:
            self._storage.close()

    # ==================== registration ====================

    def register_tool(self, item: Tool) -> Tool:
        if item.name in self._tools:
            raise RegistrationError(f"Tool {item.name!r} is already registered")
        self._tools[item.name] = item
        logger.debug("Tool registered", extra={"tool": item.name})
        return item

    def tool(
        self,
        *,
        name: str | None = None,
        description: str | None = None,
        input_schema: type[BaseModel] | None = None,
    ) -> Callable[[Callable[[Any], Any]], Tool]:
        """Decorator form of :meth:`register_tool`."""

        def decorator(fn: Callable[[Any], Any]) -> Tool:
            built = tool(name=name, description=description, input_schema=input_schema)(fn)
            return self.register_tool(built)

        return decorator

    def register_agent(self, config: AgentConfig) -> AgentConfig:
        if config.name in self._agents:
            raise RegistrationError(f"Agent {config.name!r} is already registered")
        self._agents[config.name] = config
        logger.debug("Agent registered", extra={"agent": config.name})
        return config

    def register_workflow(self, workflow: Workflow) -> Workflow:
        if not workflow.committed:
            raise RegistrationError(
                f"Workflow {workflow.id!r} must be committed before registration"
            )
        if workflow.id in self._workflows:
            raise RegistrationError(f"Workflow {workflow.id!r} is already registered")
        self._workflows[workflow.id] = workflow
        logger.debug("Workflow registered", extra={"workflow_id": workflow.id})
        return workflow

    def register_trigger(self, trigger: Trigger) -> Trigger:
        if trigger.name in self._triggers:
            raise RegistrationError(f"Trigger {trigger.name!r} is already registered")
        if isinstance(trigger, WebhookTrigger):
            for existing in self.webhook_triggers:
                if existing.route == trigger.route:
                    raise RegistrationError(
                        f"Webhook route {trigger.route} is already bound to {existing.name!r}"
                    )
        self._triggers[trigger.name] = trigger
        logger.debug("Trigger registered", extra={"trigger": trigger.name, "kind": trigger.kind})
        return trigger

    # ==================== lookup ====================

    @property
    def tools(self) -> Mapping[str, Tool]:
        return MappingProxyType(self._tools)

    @property
    def agents(self) -> Mapping[str, AgentConfig]:
        return MappingProxyType(self._agents)

    @property
    def workflows(self) -> Mapping[str, Workflow]:
        return MappingProxyType(self._workflows)

    @property
    def triggers(self) -> Mapping[str, Trigger]:
        return MappingProxyType(self._triggers)

    @property
    def cron_triggers(self) -> list[CronTrigger]:
        return [t for t in self._triggers.values() if isinstance(t, CronTrigger)]

    @property
    def webhook_triggers(self) -> list[WebhookTrigger]:
        return [t for t in self._triggers.values() if isinstance(t, WebhookTrigger)]

    def get_workflow(self, workflow_id: str) -> Workflow:
        try:
            return self._workflows[workflow_id]
        except KeyError:
            raise NotRegisteredError("workflow", workflow_id) from None

    def get_agent(self, name: str) -> Agent:
        """Return the runtime for agent `name`, building its LLM provider on first use.

        Raises:
            NotRegisteredError: If the agent or one of its tools is unknown.
            ConfigurationError: If the model selector or credentials are invalid.
        """
        with self._lock:
            cached = self._agent_cache.get(name)
        if cached is not None:
            return cached

        config = self._agents.get(name)
        if config is None:
            raise NotRegisteredError("agent", name)

        tools: list[Tool] = []
        for tool_name in config.tools:
            if tool_name not in self._tools:
                raise NotRegisteredError("tool", tool_name)
            tools.append(self._tools[tool_name])

        selector = config.model or self.settings.default_model
        built = Agent(
            config,
            llm=self._llm_builder(selector, self.settings),
            tools=tools,
            storage=self.storage if config.memory is not None else None,
        )
        with self._lock:
            return self._agent_cache.setdefault(name, built)

    # ==================== validation ====================

    def problems(self) -> list[str]:
        """Every dangling reference or invalid selector, in registration order."""
        found: list[str] = []

        for config in self._agents.values():
            for tool_name in config.tools:
                if tool_name not in self._tools:
                    found.append(f"agent {config.name!r} references unknown tool {tool_name!r}")
            selector = config.model or self.settings.default_model
            try:
                parse_model_selector(selector)
            except ConfigurationError as e:
                found.append(f"agent {config.name!r}: {e}")

        for workflow in self._workflows.values():
            for step in workflow.steps.values():
                if step.agent is not None and step.agent not in self._agents:
                    found.append(
                        f"workflow {workflow.id!r} step {step.id!r} references unknown agent "
                        f"{step.agent!r}"
                    )

        for trigger in self._triggers.values():
            workflow = self._workflows.get(trigger.workflow)
            if workflow is None:
                found.append(
                    f"trigger {trigger.name!r} references unknown workflow {trigger.workflow!r}"
                )
                continue
            if isinstance(trigger, CronTrigger):
                try:
                    workflow.input_schema.model_validate(trigger.input)
                except ValidationError as e:
                    found.append(
                        f"trigger {trigger.name!r} input does not match workflow "
                        f"{workflow.id!r}: {e.error_count()} error(s)"
                    )

        return found

    def validate(self) -> None:
        """Raise :class:`RegistrationError` listing every problem found."""
        found = self.problems()
        if found:
            raise RegistrationError("Invalid application:\n- " + "\n- ".join(found))

    def manifest(self) -> dict[str, Any]:
        """A JSON-serialisable description of the registry, without secrets."""
        storage_scheme = urlparse(self.settings.database_url).scheme or "unknown"
        return {
            "name": self.name,
            "version": __version__,
            "storage": storage_scheme.split("+", 1)[0],
            "tools": [
                {
                    "name": t.name,
                    "description": t.description,
                    "input_schema": t.input_schema.model_json_schema(),
                }
                for t in self._tools.values()
            ],
            "agents": [
                {
                    "name": a.name,
                    "description": a.description,
                    "model": a.model or self.settings.default_model,
                    "tools": list(a.tools),
                    "memory": a.memory.model_dump() if a.memory else None,
                }
                for a in self._agents.values()
            ],
            "workflows": [w.describe() for w in self._workflows.values()],
            "triggers": [describe_trigger(t) for t in self._triggers.values()],
        }


def describe_trigger(trigger: Trigger) -> dict[str, Any]:
    out = trigger.model_dump(mode="json")
    if isinstance(trigger, WebhookTrigger):
        out["route"] = trigger.route
    return out
