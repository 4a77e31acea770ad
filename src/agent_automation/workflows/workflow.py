"""Workflow declarations: a frozen graph of steps with typed input and output."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from agent_automation.errors import RegistrationError, WorkflowDefinitionError
from agent_automation.naming import validate_name
from agent_automation.workflows.step import Step

Condition = Callable[[dict[str, Any]], bool]


@dataclass(frozen=True, slots=True)
class StepNode:
    step: Step

    @property
    def steps(self) -> tuple[Step, ...]:
        return (self.step,)

    def describe(self) -> dict[str, Any]:
        return {"type": "step", "step": self.step.id}


@dataclass(frozen=True, slots=True)
class ParallelNode:
    steps: tuple[Step, ...]

    def describe(self) -> dict[str, Any]:
        return {"type": "parallel", "steps": [s.id for s in self.steps]}


@dataclass(frozen=True, slots=True)
class BranchNode:
    branches: tuple[tuple[Condition, Step], ...]

    @property
    def steps(self) -> tuple[Step, ...]:
        return tuple(s for _, s in self.branches)

    def describe(self) -> dict[str, Any]:
        return {"type": "branch", "steps": [s.id for _, s in self.branches]}


Node = StepNode | ParallelNode | BranchNode


class Workflow:
    """An ordered, conditional, and parallel arrangement of steps.

    Build with :meth:`then`, :meth:`parallel` and :meth:`branch`, then call
    :meth:`commit`. Committed workflows cannot be changed.

    Data flow:
      - the first node receives the workflow input
      - `then` passes the previous node's output to the next step
      - `parallel` runs every step on the same input and outputs
        ``{step_id: output}``
      - `branch` runs every step whose condition holds for the input and
        outputs ``{step_id: output}`` (empty when nothing matches)
    """

    def __init__(
        self,
        id: str,  # noqa: A002
        *,
        input_schema: type[BaseModel],
        output_schema: type[BaseModel],
        description: str = "",
    ) -> None:
        self.id = validate_name(id, "Workflow")
        self.input_schema = input_schema
        self.output_schema = output_schema
        self.description = description
        self._nodes: list[Node] = []
        self._committed = False

    def __repr__(self) -> str:
        return f"Workflow(id={self.id!r}, nodes={len(self._nodes)}, committed={self._committed})"

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(self._nodes)

    @property
    def steps(self) -> dict[str, Step]:
        return {s.id: s for node in self._nodes for s in node.steps}

    def get_step(self, step_id: str) -> Step:
        try:
            return self.steps[step_id]
        except KeyError:
            raise WorkflowDefinitionError(
                f"Workflow {self.id!r} has no step {step_id!r}"
            ) from None

    def _append(self, node: Node) -> Workflow:
        if self._committed:
            raise RegistrationError(f"Workflow {self.id!r} is committed and cannot be changed")
        self._nodes.append(node)
        return self

    def then(self, step: Step) -> Workflow:
        if not isinstance(step, Step):
            raise WorkflowDefinitionError(f"then() expects a Step, got {type(step).__name__}")
        return self._append(StepNode(step))

    def parallel(self, steps: Iterable[Step]) -> Workflow:
        items = tuple(steps)
        if not items:
            raise WorkflowDefinitionError("parallel() needs at least one step")
        if not all(isinstance(s, Step) for s in items):
            raise WorkflowDefinitionError("parallel() expects Steps")
        return self._append(ParallelNode(items))

    def branch(self, branches: Sequence[tuple[Condition, Step]]) -> Workflow:
        items = tuple(branches)
        if not items:
            raise WorkflowDefinitionError("branch() needs at least one (condition, step) pair")
        for condition, s in items:
            if not callable(condition) or not isinstance(s, Step):
                raise WorkflowDefinitionError("branch() expects (callable, Step) pairs")
        return self._append(BranchNode(items))

    def commit(self) -> Workflow:
        """Validate and freeze the graph.

        Raises:
            WorkflowDefinitionError: If the graph is empty or reuses a step id.
        """
        if self._committed:
            return self
        if not self._nodes:
            raise WorkflowDefinitionError(f"Workflow {self.id!r} has no steps")

        seen: set[str] = set()
        for node in self._nodes:
            for s in node.steps:
                if s.id in seen:
                    raise WorkflowDefinitionError(
                        f"Workflow {self.id!r} uses step id {s.id!r} more than once"
                    )
                seen.add(s.id)

        self._committed = True
        return self

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "input_schema": self.input_schema.model_json_schema(),
            "output_schema": self.output_schema.model_json_schema(),
            "graph": [node.describe() for node in self._nodes],
            "steps": [s.describe() for s in self.steps.values()],
        }
