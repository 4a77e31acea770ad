"""Workflow declarations and the local runner.

A workflow is a committed graph of typed steps. The runner executes it and
persists a run snapshot after every node so runs are restartable and
inspectable.
"""

from agent_automation.workflows.runner import ResumeClaim, WorkflowRunner
from agent_automation.workflows.state import RunStatus, StepResult, StepStatus, WorkflowRun
from agent_automation.workflows.step import (
    AgentPrompt,
    AgentText,
    RetryPolicy,
    Step,
    StepContext,
    agent_step,
    step,
)
from agent_automation.workflows.workflow import Workflow

__all__ = [
    "AgentPrompt",
    "AgentText",
    "ResumeClaim",
    "RetryPolicy",
    "RunStatus",
    "Step",
    "StepContext",
    "StepResult",
    "StepStatus",
    "Workflow",
    "WorkflowRun",
    "WorkflowRunner",
    "agent_step",
    "step",
]
