"""Unit tests for the local workflow runner."""

from __future__ import annotations

import threading
import time
from dataclasses import replace
from pathlib import Path

import pytest
from pydantic import BaseModel, ValidationError

from agent_automation.agents.agent import Agent
from agent_automation.agents.config import AgentConfig
from agent_automation.errors import (
    IllegalTransitionError,
    InvalidResumeError,
    NotRegisteredError,
    RunNotFoundError,
)
from agent_automation.storage.base import Storage
from agent_automation.storage.json_file import JsonFileStorage
from agent_automation.storage.memory import InMemoryStorage
from agent_automation.workflows.runner import WorkflowRunner
from agent_automation.workflows.state import RunStatus, StepStatus
from agent_automation.workflows.step import (
    AgentPrompt,
    AgentText,
    RetryPolicy,
    StepContext,
    agent_step,
    step,
)
from agent_automation.workflows.workflow import Workflow


class Numbers(BaseModel):
    value: int


class Pair(BaseModel):
    plus: Numbers
    times: Numbers


class Choice(BaseModel):
    big: Numbers | None = None
    small: Numbers | None = None


class Approval(BaseModel):
    approved: bool


class Gate(BaseModel):
    wait: Numbers
    count: Numbers


@step(input_schema=Numbers, output_schema=Numbers, id="plus")
def plus(ctx: StepContext) -> Numbers:
    return Numbers(value=ctx.input.value + 1)


@step(input_schema=Numbers, output_schema=Numbers, id="times")
def times(ctx: StepContext) -> Numbers:
    return Numbers(value=ctx.input.value * 2)


@step(input_schema=Pair, output_schema=Numbers, id="sum")
def total(ctx: StepContext) -> Numbers:
    return Numbers(value=ctx.input.plus.value + ctx.input.times.value)


@step(input_schema=Numbers, output_schema=Numbers, id="approve", resume_schema=Approval)
def approve(ctx: StepContext) -> Numbers:
    if ctx.resume_data is None:
        ctx.suspend({"question": f"Approve {ctx.input.value}?"})
    return Numbers(value=ctx.input.value if ctx.resume_data.approved else 0)


def _runner(storage: Storage, *workflows: Workflow, **kwargs) -> WorkflowRunner:
    registry = {w.id: w for w in workflows}

    def resolve(workflow_id: str) -> Workflow:
        if workflow_id not in registry:
            raise NotRegisteredError("workflow", workflow_id)
        return registry[workflow_id]

    return WorkflowRunner(storage=storage, resolve_workflow=resolve, **kwargs)


def _workflow(workflow_id: str, output_schema: type[BaseModel] = Numbers) -> Workflow:
    return Workflow(workflow_id, input_schema=Numbers, output_schema=output_schema)


def test_sequential_steps_pass_output_forward() -> None:
    storage = InMemoryStorage()
    wf = _workflow("seq").then(plus).then(times).commit()
    runner = _runner(storage, wf)

    run = runner.start("seq", {"value": 3}, trigger="test")

    assert run.status is RunStatus.SUCCESS
    assert run.output == {"value": 8}
    assert run.steps["plus"].output == {"value": 4}
    assert run.steps["times"].status is StepStatus.SUCCESS
    assert run.trigger == "test"
    assert storage.get_run(run.run_id) == run
    assert [r.run_id for r in runner.list_runs("seq")] == [run.run_id]


def test_invalid_workflow_input_is_rejected_before_run() -> None:
    storage = InMemoryStorage()
    runner = _runner(storage, _workflow("seq").then(plus).commit())

    with pytest.raises(ValidationError):
        runner.start("seq", {"value": "many"})
    assert storage.list_runs() == []

    with pytest.raises(NotRegisteredError):
        runner.start("unknown", {"value": 1})


def test_parallel_steps_share_input_and_merge_outputs() -> None:
    wf = _workflow("fan").parallel([plus, times]).then(total).commit()
    run = _runner(InMemoryStorage(), wf).start("fan", {"value": 5})

    assert run.status is RunStatus.SUCCESS
    assert run.steps["plus"].output == {"value": 6}
    assert run.steps["times"].output == {"value": 10}
    assert run.output == {"value": 16}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (3, {"big": None, "small": {"value": 4}}),
        (30, {"big": {"value": 60}, "small": None}),
    ],
)
def test_branch_runs_matching_steps(value: int, expected: dict) -> None:
    big = replace(times, id="big")
    small = replace(plus, id="small")
    wf = (
        _workflow("choose", output_schema=Choice)
        .branch([(lambda data: data["value"] >= 10, big), (lambda data: data["value"] < 10, small)])
        .commit()
    )
    run = _runner(InMemoryStorage(), wf).start("choose", {"value": value})

    assert run.status is RunStatus.SUCCESS
    assert run.output == expected


def test_branch_with_no_match_outputs_empty_mapping() -> None:
    wf = _workflow("none", output_schema=Choice).branch([(lambda data: False, plus)]).commit()
    run = _runner(InMemoryStorage(), wf).start("none", {"value": 1})

    assert run.status is RunStatus.SUCCESS
    assert run.output == {"big": None, "small": None}
    assert run.steps == {}


def test_failing_branch_condition_fails_run() -> None:
    wf = _workflow("boom").branch([(lambda data: data["missing"], plus)]).commit()
    run = _runner(InMemoryStorage(), wf).start("boom", {"value": 1})

    assert run.status is RunStatus.FAILED
    assert "Branch condition raised" in (run.error or "")


def test_retry_policy_reattempts_with_delay() -> None:
    calls: list[int] = []
    sleeps: list[float] = []

    @step(
        input_schema=Numbers,
        output_schema=Numbers,
        id="flaky",
        retry=RetryPolicy(attempts=2, delay_seconds=1.5),
    )
    def flaky(ctx: StepContext) -> Numbers:
        calls.append(ctx.attempt)
        if ctx.attempt < 3:
            raise ConnectionError("upstream unavailable")
        return ctx.input

    wf = _workflow("retry").then(flaky).commit()
    run = _runner(InMemoryStorage(), wf, sleep=sleeps.append).start("retry", {"value": 7})

    assert run.status is RunStatus.SUCCESS
    assert calls == [1, 2, 3]
    assert sleeps == [1.5, 1.5]
    assert run.steps["flaky"].attempts == 3


def test_exhausted_retries_fail_run() -> None:
    @step(input_schema=Numbers, output_schema=Numbers, id="broken", retry=RetryPolicy(attempts=1))
    def broken(ctx: StepContext) -> Numbers:
        raise RuntimeError("always broken")

    wf = _workflow("fails").then(broken).then(plus).commit()
    run = _runner(InMemoryStorage(), wf, sleep=lambda _s: None).start("fails", {"value": 1})

    assert run.status is RunStatus.FAILED
    assert "failed after 2 attempt(s)" in (run.error or "")
    assert "always broken" in (run.error or "")
    assert run.steps["broken"].attempts == 2
    assert "plus" not in run.steps


def test_invalid_step_output_fails_without_retry() -> None:
    calls: list[int] = []

    @step(input_schema=Numbers, output_schema=Numbers, id="liar", retry=RetryPolicy(attempts=3))
    def liar(ctx: StepContext) -> dict:
        calls.append(ctx.attempt)
        return {"value": "not a number"}

    run = _runner(InMemoryStorage(), _workflow("liar").then(liar).commit()).start(
        "liar", {"value": 1}
    )

    assert run.status is RunStatus.FAILED
    assert "Invalid output" in (run.error or "")
    assert calls == [1]


def test_invalid_workflow_output_fails_run() -> None:
    wf = _workflow("shape", output_schema=Pair).then(plus).commit()
    run = _runner(InMemoryStorage(), wf).start("shape", {"value": 1})

    assert run.status is RunStatus.FAILED
    assert (run.error or "").startswith("Invalid workflow output")


def test_suspend_and_resume() -> None:
    wf = _workflow("review").then(approve).then(plus).commit()
    runner = _runner(InMemoryStorage(), wf)

    run = runner.start("review", {"value": 41})

    assert run.status is RunStatus.SUSPENDED
    assert run.suspended_steps == ["approve"]
    assert run.steps["approve"].suspend_payload == {"question": "Approve 41?"}

    with pytest.raises(InvalidResumeError):
        runner.resume(run.run_id, {"approved": "perhaps"})
    with pytest.raises(InvalidResumeError):
        runner.resume(run.run_id, {"approved": True}, step_id="plus")

    done = runner.resume(run.run_id, {"approved": True})

    assert done.status is RunStatus.SUCCESS
    assert done.output == {"value": 42}
    assert done.suspended_steps == []

    with pytest.raises(InvalidResumeError):
        runner.resume(run.run_id, {"approved": True})


def test_suspend_without_resume_schema_fails() -> None:
    @step(input_schema=Numbers, output_schema=Numbers, id="sneaky", retry=RetryPolicy(attempts=2))
    def sneaky(ctx: StepContext) -> Numbers:
        ctx.suspend()

    run = _runner(InMemoryStorage(), _workflow("sneaky").then(sneaky).commit()).start(
        "sneaky", {"value": 1}
    )

    assert run.status is RunStatus.FAILED
    assert "cannot suspend" in (run.error or "")
    assert run.steps["sneaky"].attempts == 1


def test_resume_reuses_completed_parallel_siblings() -> None:
    counted: list[int] = []

    @step(input_schema=Numbers, output_schema=Numbers, id="count")
    def count(ctx: StepContext) -> Numbers:
        counted.append(ctx.input.value)
        return ctx.input

    @step(input_schema=Numbers, output_schema=Numbers, id="wait", resume_schema=Approval)
    def wait(ctx: StepContext) -> Numbers:
        if ctx.resume_data is None:
            ctx.suspend()
        return ctx.input

    wf = _workflow("gate", output_schema=Gate).parallel([wait, count]).commit()
    runner = _runner(InMemoryStorage(), wf)

    run = runner.start("gate", {"value": 9})
    assert run.status is RunStatus.SUSPENDED
    assert run.suspended_steps == ["wait"]

    done = runner.resume(run.run_id, {"approved": True}, step_id="wait")

    assert done.status is RunStatus.SUCCESS
    assert done.output == {"wait": {"value": 9}, "count": {"value": 9}}
    assert counted == [9]


def test_suspended_run_survives_restart(tmp_path: Path) -> None:
    wf = _workflow("review").then(approve).commit()
    first = _runner(JsonFileStorage(tmp_path / "state"), wf)
    run = first.start("review", {"value": 5})
    assert run.status is RunStatus.SUSPENDED

    second = _runner(JsonFileStorage(tmp_path / "state"), wf)
    done = second.resume(run.run_id, {"approved": False})

    assert done.status is RunStatus.SUCCESS
    assert done.output == {"value": 0}


def test_cancel_suspended_run() -> None:
    wf = _workflow("review").then(approve).commit()
    runner = _runner(InMemoryStorage(), wf)
    run = runner.start("review", {"value": 1})

    canceled = runner.cancel(run.run_id)

    assert canceled.status is RunStatus.CANCELED
    assert runner.get_run(run.run_id).status is RunStatus.CANCELED
    with pytest.raises(IllegalTransitionError):
        runner.cancel(run.run_id)
    with pytest.raises(InvalidResumeError):
        runner.resume(run.run_id, {"approved": True})


def test_concurrent_resumes_run_the_step_once() -> None:
    resumed: list[bool] = []

    @step(input_schema=Numbers, output_schema=Numbers, id="hold", resume_schema=Approval)
    def hold(ctx: StepContext) -> Numbers:
        if ctx.resume_data is None:
            ctx.suspend()
        resumed.append(ctx.resume_data.approved)
        return ctx.input

    class SlowStorage(InMemoryStorage):
        def get_run(self, run_id: str):
            run = super().get_run(run_id)
            time.sleep(0.05)
            return run

    storage = SlowStorage()
    runner = _runner(storage, _workflow("hold").then(hold).commit())
    run = runner.start("hold", {"value": 3})

    barrier = threading.Barrier(2)
    outcomes: list[object] = []

    def resume() -> None:
        barrier.wait()
        try:
            outcomes.append(runner.resume(run.run_id, {"approved": True}).status)
        except InvalidResumeError as e:
            outcomes.append(e)

    threads = [threading.Thread(target=resume) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert resumed == [True]
    assert RunStatus.SUCCESS in outcomes
    assert sum(isinstance(o, InvalidResumeError) for o in outcomes) == 1
    assert runner.get_run(run.run_id).status is RunStatus.SUCCESS


def test_claimed_run_cannot_be_canceled_or_claimed_again() -> None:
    wf = _workflow("review").then(approve).commit()
    runner = _runner(InMemoryStorage(), wf)
    run = runner.start("review", {"value": 8})

    claim = runner.claim_resume(run.run_id, {"approved": True})

    assert claim.step_id == "approve"
    assert runner.get_run(run.run_id).status is RunStatus.RUNNING
    with pytest.raises(IllegalTransitionError):
        runner.cancel(run.run_id)
    with pytest.raises(InvalidResumeError, match="running"):
        runner.claim_resume(run.run_id, {"approved": True})

    done = runner.continue_run(claim)
    assert done.status is RunStatus.SUCCESS
    assert done.output == {"value": 8}


def test_get_unknown_run() -> None:
    runner = _runner(InMemoryStorage())
    with pytest.raises(RunNotFoundError):
        runner.get_run("nope")


def test_agent_step_uses_resolved_agent(scripted_llm) -> None:
    scripted_llm.script("Paris")
    agent = Agent(AgentConfig(name="geo", instructions="Answer briefly."), llm=scripted_llm)
    wf = (
        Workflow("ask", input_schema=AgentPrompt, output_schema=AgentText)
        .then(agent_step("capital", "geo"))
        .commit()
    )
    runner = _runner(InMemoryStorage(), wf, resolve_agent={"geo": agent}.__getitem__)

    run = runner.start("ask", {"prompt": "Capital of France?"})

    assert run.status is RunStatus.SUCCESS
    assert run.output == {"text": "Paris"}
    assert scripted_llm.requests[0]["messages"][-1]["content"] == "Capital of France?"
