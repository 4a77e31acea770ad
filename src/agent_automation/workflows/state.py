"""Workflow run state machine and persisted run snapshots.

Run snapshots are saved through the storage handle after every node and
status change so that suspended runs can be inspected and resumed after a
restart.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from agent_automation.errors import IllegalTransitionError


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUSPENDED = "suspended"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"


ALLOWED_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.CANCELED},
    RunStatus.RUNNING: {RunStatus.SUSPENDED, RunStatus.SUCCESS, RunStatus.FAILED},
    RunStatus.SUSPENDED: {RunStatus.RUNNING, RunStatus.CANCELED},
    RunStatus.SUCCESS: set(),
    RunStatus.FAILED: set(),
    RunStatus.CANCELED: set(),
}

TERMINAL_STATUSES = frozenset({RunStatus.SUCCESS, RunStatus.FAILED, RunStatus.CANCELED})


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SUSPENDED = "suspended"


class StepResult(BaseModel):
    status: StepStatus
    attempts: int = 0
    output: dict[str, Any] | None = None
    error: str | None = None
    suspend_payload: dict[str, Any] | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None


class WorkflowRun(BaseModel):
    """Persisted snapshot of a single workflow execution."""

    run_id: str
    workflow_id: str
    status: RunStatus = RunStatus.PENDING
    input: dict[str, Any] = Field(default_factory=dict)

    # Index of the next graph node to execute and the payload it receives.
    cursor: int = 0
    current: dict[str, Any] = Field(default_factory=dict)

    steps: dict[str, StepResult] = Field(default_factory=dict)
    suspended_steps: list[str] = Field(default_factory=list)

    output: dict[str, Any] | None = None
    error: str | None = None
    trigger: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def transition(*, current: WorkflowRun, to: RunStatus, **updates: Any) -> WorkflowRun:
    """Return a copy of `current` moved to `to`, applying `updates`.

    Raises:
        IllegalTransitionError: If the state machine does not allow the move.
    """
    allowed = ALLOWED_TRANSITIONS.get(current.status, set())
    if to not in allowed:
        raise IllegalTransitionError(
            f"Illegal transition: {current.status.value} -> {to.value} (run {current.run_id})"
        )
    return current.model_copy(update={"status": to, "updated_at": utc_now(), **updates})
