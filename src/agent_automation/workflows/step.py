"""Workflow step declarations and the context a step executes with."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NoReturn

from pydantic import BaseModel, ConfigDict, Field

from agent_automation.errors import WorkflowDefinitionError
from agent_automation.workflows.state import StepResult, StepStatus

if TYPE_CHECKING:
    from agent_automation.agents.agent import Agent


class RetryPolicy(BaseModel):
    """Re-attempts allowed after a step's first failure."""

    model_config = ConfigDict(frozen=True)

    attempts: int = Field(default=0, ge=0, le=20)
    delay_seconds: float = Field(default=0.0, ge=0.0, le=3600.0)


class SuspendRequested(Exception):
    """Raised by :meth:`StepContext.suspend`; the runner parks the run."""

    def __init__(self, payload: dict[str, Any]) -> None:
        super().__init__("step suspended")
        self.payload = payload


@dataclass(slots=True)
class StepContext:
    """Everything a step may read while it runs. Avoid implicit global context."""

    input: BaseModel
    step_id: str
    run_id: str
    workflow_id: str
    workflow_input: dict[str, Any]
    attempt: int = 1
    resume_data: BaseModel | None = None
    results: Mapping[str, StepResult] = field(default_factory=dict)
    can_suspend: bool = False
    agent_resolver: Callable[[str], Agent] | None = None

    def suspend(self, payload: Mapping[str, Any] | BaseModel | None = None) -> NoReturn:
        """Park the run until it is resumed with data matching the step's resume schema."""
        if not self.can_suspend:
            raise WorkflowDefinitionError(
                f"Step {self.step_id!r} has no resume_schema and cannot suspend"
            )
        if isinstance(payload, BaseModel):
            data = payload.model_dump(mode="json")
        else:
            data = dict(payload or {})
        raise SuspendRequested(data)

    def get_step_result(self, step_id: str) -> dict[str, Any] | None:
        result = self.results.get(step_id)
        if result is None or result.status is not StepStatus.SUCCESS:
            return None
        return result.output

    def get_agent(self, name: str) -> Agent:
        if self.agent_resolver is None:
            raise WorkflowDefinitionError("No agents are available to this workflow run")
        return self.agent_resolver(name)


StepFunction = Callable[[StepContext], "Mapping[str, Any] | BaseModel"]


@dataclass(frozen=True, slots=True)
class Step:
    """A unit of work with typed input and output.

    Declaring `resume_schema` marks the step as a suspend point.
    """

    id: str
    execute: StepFunction = field(repr=False)
    input_schema: type[BaseModel]
    output_schema: type[BaseModel]
    description: str = ""
    retry: RetryPolicy | None = None
    resume_schema: type[BaseModel] | None = None
    agent: str | None = None

    @property
    def max_attempts(self) -> int:
        return 1 + (self.retry.attempts if self.retry else 0)

    @property
    def is_suspend_point(self) -> bool:
        return self.resume_schema is not None

    def describe(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "description": self.description,
            "input_schema": self.input_schema.model_json_schema(),
            "output_schema": self.output_schema.model_json_schema(),
        }
        if self.retry is not None:
            out["retry"] = self.retry.model_dump()
        if self.resume_schema is not None:
            out["resume_schema"] = self.resume_schema.model_json_schema()
        if self.agent is not None:
            out["agent"] = self.agent
        return out


def step(
    *,
    input_schema: type[BaseModel],
    output_schema: type[BaseModel],
    id: str | None = None,  # noqa: A002 (mirrors Step.id)
    description: str | None = None,
    retry: RetryPolicy | None = None,
    resume_schema: type[BaseModel] | None = None,
) -> Callable[[StepFunction], Step]:
    """Decorator turning a function of :class:`StepContext` into a :class:`Step`."""

    def decorator(fn: StepFunction) -> Step:
        return Step(
            id=id or fn.__name__.replace("_", "-"),
            execute=fn,
            input_schema=input_schema,
            output_schema=output_schema,
            description=description if description is not None else (fn.__doc__ or "").strip(),
            retry=retry,
            resume_schema=resume_schema,
        )

    return decorator


class AgentPrompt(BaseModel):
    prompt: str
    thread_id: str | None = None
    resource_id: str | None = None


class AgentText(BaseModel):
    text: str


def agent_step(id: str, agent: str, *, retry: RetryPolicy | None = None) -> Step:  # noqa: A002
    """A step that sends `prompt` to a registered agent and returns its answer."""

    def run(ctx: StepContext) -> AgentText:
        assert isinstance(ctx.input, AgentPrompt)
        response = ctx.get_agent(agent).generate(
            ctx.input.prompt,
            thread_id=ctx.input.thread_id,
            resource_id=ctx.input.resource_id,
        )
        return AgentText(text=response.text)

    return Step(
        id=id,
        execute=run,
        input_schema=AgentPrompt,
        output_schema=AgentText,
        description=f"Ask agent {agent!r}",
        retry=retry,
        agent=agent,
    )
