"""Local workflow runner.

Executes committed workflows node by node, persisting a `WorkflowRun` snapshot
through the storage handle after each node so runs can be inspected and
suspended runs resumed. Retries are a bounded, fixed-delay re-attempt of the
failing step; there is no cross-process memoization.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
import zlib
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from agent_automation.errors import (
    InvalidResumeError,
    RunNotFoundError,
    StepExecutionError,
    WorkflowDefinitionError,
)
from agent_automation.workflows.state import (
    RunStatus,
    StepResult,
    StepStatus,
    WorkflowRun,
    transition,
    utc_now,
)
from agent_automation.workflows.step import Step, StepContext, SuspendRequested
from agent_automation.workflows.workflow import BranchNode, Node, StepNode, Workflow

if TYPE_CHECKING:
    from agent_automation.agents.agent import Agent
    from agent_automation.storage.base import Storage

logger = logging.getLogger(__name__)

_STATUS_LOCK_STRIPES = 32


def _dump(value: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return dict(value)


@dataclass(frozen=True, slots=True)
class ResumeClaim:
    """A suspended run that has been moved to running by one caller."""

    run: WorkflowRun
    workflow: Workflow
    step_id: str
    data: BaseModel


class WorkflowRunner:
    """Run workflows against a storage handle."""

    def __init__(
        self,
        *,
        storage: Storage,
        resolve_workflow: Callable[[str], Workflow],
        resolve_agent: Callable[[str], Agent] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.storage = storage
        self._resolve_workflow = resolve_workflow
        self._resolve_agent = resolve_agent
        self._sleep = sleep
        self._status_locks = tuple(threading.Lock() for _ in range(_STATUS_LOCK_STRIPES))

    # ==================== public API ====================

    def create_run(
        self,
        workflow_id: str,
        input_data: Mapping[str, Any] | None = None,
        *,
        trigger: str | None = None,
    ) -> WorkflowRun:
        """Validate the input and persist a pending run.

        Raises:
            NotRegisteredError: If the workflow is unknown.
            pydantic.ValidationError: If the input does not match the workflow schema.
        """
        workflow = self._resolve_workflow(workflow_id)
        validated = _dump(workflow.input_schema.model_validate(dict(input_data or {})))
        run = WorkflowRun(
            run_id=uuid.uuid4().hex,
            workflow_id=workflow.id,
            input=validated,
            current=validated,
            trigger=trigger,
        )
        self.storage.save_run(run)
        logger.info(
            "Workflow run created",
            extra={"run_id": run.run_id, "workflow_id": workflow.id, "trigger": trigger},
        )
        return run

    def execute(self, run_id: str) -> WorkflowRun:
        """Execute a pending run to completion, failure, or suspension.

        Raises:
            IllegalTransitionError: If the run is no longer pending.
        """
        with self._run_lock(run_id):
            run = self.get_run(run_id)
            workflow = self._resolve_workflow(run.workflow_id)
            run = transition(current=run, to=RunStatus.RUNNING)
            self.storage.save_run(run)
        return self._execute(workflow, run, resume={})

    def start(
        self,
        workflow_id: str,
        input_data: Mapping[str, Any] | None = None,
        *,
        trigger: str | None = None,
    ) -> WorkflowRun:
        run = self.create_run(workflow_id, input_data, trigger=trigger)
        return self.execute(run.run_id)

    def resume(
        self,
        run_id: str,
        resume_data: Mapping[str, Any] | None = None,
        *,
        step_id: str | None = None,
    ) -> WorkflowRun:
        """Continue a suspended run.

        `step_id` may be omitted when exactly one step is suspended.

        Raises:
            InvalidResumeError: If the run is not suspended, the step is not
                suspended, or `resume_data` does not match the step's resume schema.
        """
        return self.continue_run(self.claim_resume(run_id, resume_data, step_id=step_id))

    def claim_resume(
        self,
        run_id: str,
        resume_data: Mapping[str, Any] | None = None,
        *,
        step_id: str | None = None,
    ) -> ResumeClaim:
        """Validate a resume and move the run to running.

        Only one caller can claim a suspended run; later callers see it
        running and get `InvalidResumeError`. Pass the claim to
        :meth:`continue_run`, possibly on another thread.
        """
        with self._run_lock(run_id):
            run, workflow, step_id, data = self._prepare_resume(run_id, resume_data, step_id)
            run = transition(current=run, to=RunStatus.RUNNING)
            self.storage.save_run(run)
        logger.info("Workflow run resumed", extra={"run_id": run_id, "step_id": step_id})
        return ResumeClaim(run=run, workflow=workflow, step_id=step_id, data=data)

    def continue_run(self, claim: ResumeClaim) -> WorkflowRun:
        return self._execute(claim.workflow, claim.run, resume={claim.step_id: claim.data})

    def _prepare_resume(
        self,
        run_id: str,
        resume_data: Mapping[str, Any] | None,
        step_id: str | None,
    ) -> tuple[WorkflowRun, Workflow, str, BaseModel]:
        run = self.get_run(run_id)
        if run.status is not RunStatus.SUSPENDED:
            raise InvalidResumeError(f"Run {run_id} is {run.status.value}, not suspended")

        if step_id is None:
            if len(run.suspended_steps) != 1:
                raise InvalidResumeError(
                    f"Run {run_id} has suspended steps {run.suspended_steps}; specify step_id"
                )
            step_id = run.suspended_steps[0]
        if step_id not in run.suspended_steps:
            raise InvalidResumeError(f"Step {step_id!r} is not suspended in run {run_id}")

        workflow = self._resolve_workflow(run.workflow_id)
        step = workflow.get_step(step_id)
        assert step.resume_schema is not None
        try:
            data = step.resume_schema.model_validate(dict(resume_data or {}))
        except ValidationError as e:
            raise InvalidResumeError(f"Invalid resume data for step {step_id!r}: {e}") from e
        return run, workflow, step_id, data

    def cancel(self, run_id: str) -> WorkflowRun:
        with self._run_lock(run_id):
            run = transition(
                current=self.get_run(run_id), to=RunStatus.CANCELED, suspended_steps=[]
            )
            self.storage.save_run(run)
        logger.info("Workflow run canceled", extra={"run_id": run_id})
        return run

    def get_run(self, run_id: str) -> WorkflowRun:
        run = self.storage.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    def list_runs(self, workflow_id: str | None = None) -> list[WorkflowRun]:
        return self.storage.list_runs(workflow_id)

    def _run_lock(self, run_id: str) -> threading.Lock:
        # Status changes (claim, cancel) are check-then-save; serialize them per run.
        return self._status_locks[zlib.crc32(run_id.encode()) % len(self._status_locks)]

    # ==================== execution ====================

    def _execute(
        self, workflow: Workflow, run: WorkflowRun, resume: dict[str, BaseModel]
    ) -> WorkflowRun:
        nodes = workflow.nodes
        while run.cursor < len(nodes):
            node = nodes[run.cursor]
            results = self._run_node(workflow, node, run, resume)
            resume = {}
            steps = {**run.steps, **results}

            failed = [sid for sid, r in results.items() if r.status is StepStatus.FAILED]
            if failed:
                error = results[failed[0]].error
                run = transition(
                    current=run,
                    to=RunStatus.FAILED,
                    steps=steps,
                    suspended_steps=[],
                    error=error,
                )
                self.storage.save_run(run)
                logger.warning(
                    "Workflow run failed",
                    extra={"run_id": run.run_id, "step_id": failed[0], "error": error},
                )
                return run

            suspended = [sid for sid, r in results.items() if r.status is StepStatus.SUSPENDED]
            if suspended:
                run = transition(
                    current=run, to=RunStatus.SUSPENDED, steps=steps, suspended_steps=suspended
                )
                self.storage.save_run(run)
                logger.info(
                    "Workflow run suspended",
                    extra={"run_id": run.run_id, "suspended_steps": suspended},
                )
                return run

            output: dict[str, Any]
            if isinstance(node, StepNode):
                output = results[node.step.id].output or {}
            else:
                output = {sid: r.output for sid, r in results.items()}

            run = run.model_copy(
                update={
                    "steps": steps,
                    "cursor": run.cursor + 1,
                    "current": output,
                    "suspended_steps": [],
                    "updated_at": utc_now(),
                }
            )
            self.storage.save_run(run)

        try:
            final = _dump(workflow.output_schema.model_validate(run.current))
        except ValidationError as e:
            run = transition(
                current=run, to=RunStatus.FAILED, error=f"Invalid workflow output: {e}"
            )
            self.storage.save_run(run)
            logger.warning("Workflow output rejected", extra={"run_id": run.run_id})
            return run

        run = transition(current=run, to=RunStatus.SUCCESS, output=final)
        self.storage.save_run(run)
        logger.info(
            "Workflow run succeeded", extra={"run_id": run.run_id, "workflow_id": workflow.id}
        )
        return run

    def _run_node(
        self,
        workflow: Workflow,
        node: Node,
        run: WorkflowRun,
        resume: dict[str, BaseModel],
    ) -> dict[str, StepResult]:
        if isinstance(node, StepNode):
            return {node.step.id: self._run_step(node.step, run, resume.get(node.step.id))}

        if isinstance(node, BranchNode):
            selected: list[Step] = []
            for condition, candidate in node.branches:
                try:
                    matched = bool(condition(dict(run.current)))
                except Exception as e:
                    logger.exception(
                        "Branch condition raised",
                        extra={"run_id": run.run_id, "step_id": candidate.id},
                    )
                    return {
                        candidate.id: StepResult(
                            status=StepStatus.FAILED, error=f"Branch condition raised: {e}"
                        )
                    }
                if matched:
                    selected.append(candidate)
        else:
            selected = list(node.steps)

        results: dict[str, StepResult] = {}
        pending: list[Step] = []
        for s in selected:
            previous = run.steps.get(s.id)
            # Results from before a suspension belong to this node: reuse them
            # unless this step is the one being resumed.
            if previous is not None and s.id not in resume:
                if previous.status in (StepStatus.SUCCESS, StepStatus.SUSPENDED):
                    results[s.id] = previous
                    continue
            pending.append(s)

        if len(pending) == 1:
            s = pending[0]
            results[s.id] = self._run_step(s, run, resume.get(s.id))
        elif pending:
            with ThreadPoolExecutor(
                max_workers=len(pending), thread_name_prefix=f"wf-{workflow.id}"
            ) as pool:
                futures = {
                    s.id: pool.submit(self._run_step, s, run, resume.get(s.id)) for s in pending
                }
                for sid, future in futures.items():
                    results[sid] = future.result()

        return {s.id: results[s.id] for s in selected}

    def _run_step(
        self, step: Step, run: WorkflowRun, resume_data: BaseModel | None
    ) -> StepResult:
        started = utc_now()
        try:
            parsed = step.input_schema.model_validate(run.current)
        except ValidationError as e:
            return StepResult(
                status=StepStatus.FAILED,
                error=f"Invalid input for step {step.id!r}: {e}",
                started_at=started,
                ended_at=utc_now(),
            )

        last_error = ""
        for attempt in range(1, step.max_attempts + 1):
            ctx = StepContext(
                input=parsed,
                step_id=step.id,
                run_id=run.run_id,
                workflow_id=run.workflow_id,
                workflow_input=run.input,
                attempt=attempt,
                resume_data=resume_data,
                results=run.steps,
                can_suspend=step.is_suspend_point,
                agent_resolver=self._resolve_agent,
            )
            try:
                raw = step.execute(ctx)
            except SuspendRequested as s:
                return StepResult(
                    status=StepStatus.SUSPENDED,
                    attempts=attempt,
                    suspend_payload=s.payload,
                    started_at=started,
                    ended_at=utc_now(),
                )
            except WorkflowDefinitionError as e:
                last_error = str(e)
                break
            except Exception as e:
                logger.warning(
                    "Step attempt failed",
                    extra={
                        "run_id": run.run_id,
                        "step_id": step.id,
                        "attempt": attempt,
                        "max_attempts": step.max_attempts,
                        "error": f"{type(e).__name__}: {e}",
                    },
                )
                last_error = str(StepExecutionError(step.id, attempt, e))
                if attempt < step.max_attempts and step.retry is not None:
                    self._sleep(step.retry.delay_seconds)
                continue

            try:
                output = _dump(step.output_schema.model_validate(_dump(raw)))
            except (ValidationError, TypeError, ValueError) as e:
                return StepResult(
                    status=StepStatus.FAILED,
                    attempts=attempt,
                    error=f"Invalid output from step {step.id!r}: {e}",
                    started_at=started,
                    ended_at=utc_now(),
                )
            return StepResult(
                status=StepStatus.SUCCESS,
                attempts=attempt,
                output=output,
                started_at=started,
                ended_at=utc_now(),
            )

        return StepResult(
            status=StepStatus.FAILED,
            attempts=attempt,
            error=last_error,
            started_at=started,
            ended_at=utc_now(),
        )
