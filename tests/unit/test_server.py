"""HTTP endpoint tests using FastAPI's TestClient."""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from agent_automation.agents.config import AgentConfig, MemoryConfig
from agent_automation.application import Application
from agent_automation.errors import ConfigurationError
from agent_automation.server.app import create_app
from agent_automation.server.dispatcher import RunDispatcher
from agent_automation.triggers.models import CronTrigger, WebhookTrigger
from agent_automation.triggers.providers import slack_signature
from agent_automation.workflows.step import StepContext, step
from agent_automation.workflows.workflow import Workflow


class Query(BaseModel):
    text: str


class Answer(BaseModel):
    text: str


class Approval(BaseModel):
    approved: bool


class ChatMessage(BaseModel):
    chat_id: int
    text: str


@step(input_schema=Query, output_schema=Answer, id="echo")
def echo(ctx: StepContext) -> Answer:
    return Answer(text=ctx.input.text.upper())


@step(input_schema=Query, output_schema=Answer, id="approve", resume_schema=Approval)
def approve(ctx: StepContext) -> Answer:
    if ctx.resume_data is None:
        ctx.suspend({"question": ctx.input.text})
    return Answer(text="yes" if ctx.resume_data.approved else "no")


@step(input_schema=ChatMessage, output_schema=Answer, id="reply")
def reply(ctx: StepContext) -> Answer:
    return Answer(text=f"{ctx.input.chat_id}: {ctx.input.text}")


@pytest.fixture
def app(application: Application) -> FastAPI:
    application.register_agent(
        AgentConfig(name="helper", instructions="Be brief.", memory=MemoryConfig())
    )
    application.register_workflow(
        Workflow("echo", input_schema=Query, output_schema=Answer).then(echo).commit()
    )
    application.register_workflow(
        Workflow("review", input_schema=Query, output_schema=Answer).then(approve).commit()
    )
    application.register_workflow(
        Workflow("chat", input_schema=ChatMessage, output_schema=Answer).then(reply).commit()
    )
    application.register_trigger(
        WebhookTrigger(provider="telegram", action="message", workflow="chat")
    )
    return create_app(application)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as c:
        yield c


def test_health(client: TestClient) -> None:
    health = client.get("/api/health").json()

    assert health["status"] == "ok"
    assert health["application"] == "test-app"
    assert health["storage"] == "memory"
    assert health["scheduler_running"] is False
    assert "version" in health


def test_list_registry(client: TestClient) -> None:
    assert [a["name"] for a in client.get("/api/agents").json()] == ["helper"]
    assert client.get("/api/agents/helper").json()["memory"]["last_messages"] == 10
    assert client.get("/api/agents/nobody").status_code == 404

    workflows = client.get("/api/workflows").json()
    assert [w["id"] for w in workflows] == ["echo", "review", "chat"]
    assert client.get("/api/workflows/echo").json()["graph"] == [{"type": "step", "step": "echo"}]
    assert client.get("/api/workflows/missing").status_code == 404

    triggers = client.get("/api/triggers").json()
    assert triggers[0]["route"] == "/webhooks/telegram/message"


def test_generate_with_memory(client: TestClient, scripted_llm) -> None:
    scripted_llm.script("Hi Ada", "Your name is Ada")

    first = client.post(
        "/api/agents/helper/generate", json={"message": "I am Ada", "thread_id": "t1"}
    )
    assert first.status_code == 200
    assert first.json()["text"] == "Hi Ada"

    second = client.post(
        "/api/agents/helper/generate", json={"message": "Who am I?", "thread_id": "t1"}
    ).json()
    assert second["text"] == "Your name is Ada"
    assert second["thread_id"] == "t1"

    messages = client.get("/api/threads/t1/messages").json()
    assert [m["content"] for m in messages] == [
        "I am Ada",
        "Hi Ada",
        "Who am I?",
        "Your name is Ada",
    ]
    latest = client.get("/api/threads/t1/messages", params={"limit": 1}).json()
    assert [m["role"] for m in latest] == ["assistant"]
    assert client.get("/api/threads/unknown/messages").status_code == 404


def test_generate_errors(client: TestClient) -> None:
    assert client.post("/api/agents/nobody/generate", json={"message": "hi"}).status_code == 404
    assert client.post("/api/agents/helper/generate", json={"message": ""}).status_code == 422


def test_start_run_inline(client: TestClient) -> None:
    resp = client.post("/api/workflows/echo/runs", json={"input": {"text": "hi"}, "wait": True})

    assert resp.status_code == 200
    run = resp.json()
    assert run["status"] == "success"
    assert run["output"] == {"text": "HI"}
    assert run["trigger"] == "api"
    assert client.get(f"/api/runs/{run['run_id']}").json()["status"] == "success"
    assert [r["run_id"] for r in client.get("/api/workflows/echo/runs").json()] == [run["run_id"]]


def test_start_run_in_background(app: FastAPI, client: TestClient) -> None:
    resp = client.post("/api/workflows/echo/runs", json={"input": {"text": "later"}})

    assert resp.status_code == 202
    run_id = resp.json()["run_id"]
    app.state.dispatcher.join(timeout=5)
    assert client.get(f"/api/runs/{run_id}").json()["output"] == {"text": "LATER"}


def test_start_run_errors(client: TestClient) -> None:
    assert client.post("/api/workflows/missing/runs", json={}).status_code == 404
    assert client.post("/api/workflows/echo/runs", json={"input": {}}).status_code == 422
    assert client.get("/api/workflows/missing/runs").status_code == 404
    assert client.get("/api/runs/missing").status_code == 404


def test_resume_and_cancel(app: FastAPI, client: TestClient) -> None:
    suspended = client.post(
        "/api/workflows/review/runs", json={"input": {"text": "ship?"}, "wait": True}
    ).json()
    assert suspended["status"] == "suspended"
    run_id = suspended["run_id"]

    bad = client.post(f"/api/runs/{run_id}/resume", json={"resume_data": {"approved": "maybe"}})
    assert bad.status_code == 409

    accepted = client.post(f"/api/runs/{run_id}/resume", json={"resume_data": {"approved": True}})
    assert accepted.status_code == 202
    assert accepted.json()["status"] == "running"
    again = client.post(f"/api/runs/{run_id}/resume", json={"resume_data": {"approved": True}})
    assert again.status_code == 409
    app.state.dispatcher.join(timeout=5)
    assert client.get(f"/api/runs/{run_id}").json()["output"] == {"text": "yes"}

    assert client.post(f"/api/runs/{run_id}/cancel").status_code == 409

    other = client.post(
        "/api/workflows/review/runs", json={"input": {"text": "again?"}, "wait": True}
    ).json()
    canceled = client.post(f"/api/runs/{other['run_id']}/cancel")
    assert canceled.status_code == 200
    assert canceled.json()["status"] == "canceled"


def test_telegram_webhook_starts_run(app: FastAPI, client: TestClient) -> None:
    update = {"update_id": 1, "message": {"message_id": 2, "chat": {"id": 5}, "text": "ping"}}

    resp = client.post("/webhooks/telegram/message", content=json.dumps(update))

    assert resp.status_code == 202
    body = resp.json()
    assert body["accepted"] is True
    assert body["trigger"] == "telegram.message"
    app.state.dispatcher.join(timeout=5)
    run = client.get(f"/api/runs/{body['run_id']}").json()
    assert run["output"] == {"text": "5: ping"}
    assert run["trigger"] == "telegram.message"


def test_webhook_errors(client: TestClient) -> None:
    ignored = client.post("/webhooks/telegram/message", content=b'{"update_id": 3}')
    assert ignored.status_code == 200
    assert ignored.json()["accepted"] is False

    assert client.post("/webhooks/telegram/unknown", content=b"{}").status_code == 404
    assert client.post("/webhooks/telegram/message", content=b"not json").status_code == 400


def test_create_app_requires_app_spec(settings) -> None:
    with pytest.raises(ConfigurationError, match="AGENT_APP"):
        create_app(settings=settings)


@pytest.fixture
def slack_client(application: Application, settings) -> Iterator[TestClient]:
    application.register_workflow(
        Workflow("echo", input_schema=Query, output_schema=Answer).then(echo).commit()
    )
    application.register_trigger(WebhookTrigger(provider="slack", action="events", workflow="echo"))
    signed = settings.model_copy(update={"slack_signing_secret": "shh"})
    with TestClient(create_app(application, settings=signed)) as c:
        yield c


def test_lifespan_starts_and_stops_scheduler(application: Application, settings) -> None:
    application.register_workflow(
        Workflow("echo", input_schema=Query, output_schema=Answer).then(echo).commit()
    )
    application.register_trigger(
        CronTrigger(name="nightly", cron="0 3 * * *", workflow="echo", input={"text": "tick"})
    )
    app = create_app(application, settings=settings.model_copy(update={"scheduler_enabled": True}))

    with TestClient(app) as client:
        assert client.get("/api/health").json()["scheduler_running"] is True
        jobs = client.get("/api/scheduler/jobs").json()
        assert [job["id"] for job in jobs] == ["cron:nightly"]
        assert jobs[0]["next_run_time"] is not None

    assert app.state.scheduler.running is False


def test_slack_url_verification_challenge(slack_client: TestClient) -> None:
    body = b'{"type": "url_verification", "challenge": "c-123"}'
    timestamp = str(int(time.time()))

    resp = slack_client.post(
        "/webhooks/slack/events",
        content=body,
        headers={
            "x-slack-request-timestamp": timestamp,
            "x-slack-signature": slack_signature("shh", timestamp, body),
        },
    )

    assert resp.status_code == 200
    assert resp.json() == {"challenge": "c-123"}


def test_slack_rejects_non_ascii_signature(slack_client: TestClient) -> None:
    resp = slack_client.post(
        "/webhooks/slack/events",
        content=b'{"type": "url_verification", "challenge": "c"}',
        headers={
            "x-slack-request-timestamp": str(int(time.time())).encode(),
            "x-slack-signature": b"v0=\xe9",
        },
    )

    assert resp.status_code == 401


def test_dispatcher_tracks_every_thread_for_a_run(application: Application) -> None:
    dispatcher = RunDispatcher(application.runner)
    release = threading.Event()

    dispatcher._spawn("run-1", lambda: None)
    dispatcher._spawn("run-1", release.wait)
    deadline = time.monotonic() + 5
    while dispatcher.in_flight > 1 and time.monotonic() < deadline:
        time.sleep(0.01)

    assert dispatcher.in_flight == 1
    release.set()
    dispatcher.join(timeout=5)
    assert dispatcher.in_flight == 0
