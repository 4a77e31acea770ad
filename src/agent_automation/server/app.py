"""FastAPI app factory.

Endpoints are intentionally thin wrappers over the application registry, the
workflow runner, and the trigger dispatchers.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from agent_automation import __version__
from agent_automation.application import Application, describe_trigger
from agent_automation.config import AppSettings
from agent_automation.errors import (
    AgentError,
    ConfigurationError,
    IllegalTransitionError,
    InvalidResumeError,
    NotRegisteredError,
    RunNotFoundError,
    WebhookError,
)
from agent_automation.loader import load_application
from agent_automation.server.dispatcher import RunDispatcher
from agent_automation.server.models import (
    ApiMessage,
    ApiToolCall,
    GenerateRequest,
    GenerateResponse,
    HealthResponse,
    ResumeRunRequest,
    StartRunRequest,
)
from agent_automation.triggers.dispatcher import WebhookDispatcher
from agent_automation.triggers.providers import build_providers
from agent_automation.triggers.scheduler import CronScheduler
from agent_automation.workflows.state import WorkflowRun

logger = logging.getLogger(__name__)


def create_app(
    application: Application | None = None, settings: AppSettings | None = None
) -> FastAPI:
    """Build the HTTP surface for `application`.

    When `application` is None it is loaded from ``AGENT_APP``.
    """
    if application is None:
        settings = settings or AppSettings()
        if not settings.app.strip():
            raise ConfigurationError("AGENT_APP is not set; cannot locate the Application")
        application = load_application(settings.app)
    settings = settings or application.settings

    dispatcher = RunDispatcher(application.runner)
    webhooks = WebhookDispatcher(
        application.webhook_triggers,
        build_providers(settings),
        dispatcher.submit,
        generic_secret=settings.webhook_secret,
    )
    scheduler = CronScheduler(
        application.cron_triggers, dispatcher.submit, timezone=settings.scheduler_timezone
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if settings.scheduler_enabled and application.cron_triggers:
            scheduler.start()
        elif application.cron_triggers:
            logger.info(
                "Scheduler disabled; cron triggers will not fire",
                extra={"triggers": [t.name for t in application.cron_triggers]},
            )
        try:
            yield
        finally:
            scheduler.shutdown()
            dispatcher.join(timeout=5.0)

    app = FastAPI(
        title=application.name,
        version=__version__,
        description="Agents, workflows, and triggers served by agent-automation.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # Expose collaborators for request handlers and tests.
    app.state.application = application
    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.scheduler = scheduler
    app.state.webhooks = webhooks

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    runner = application.runner

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            application=application.name,
            version=__version__,
            storage=application.storage.kind,
            scheduler_running=scheduler.running,
        )

    # ==================== agents ====================

    @app.get("/api/agents")
    def list_agents() -> list[dict[str, Any]]:
        return application.manifest()["agents"]

    @app.get("/api/agents/{name}")
    def get_agent(name: str) -> dict[str, Any]:
        for entry in application.manifest()["agents"]:
            if entry["name"] == name:
                return entry
        raise HTTPException(status_code=404, detail=f"Unknown agent: {name!r}")

    @app.post("/api/agents/{name}/generate", response_model=GenerateResponse)
    def generate(name: str, req: GenerateRequest) -> GenerateResponse:
        try:
            agent = application.get_agent(name)
        except NotRegisteredError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except ConfigurationError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e

        try:
            response = agent.generate(
                req.message,
                thread_id=req.thread_id,
                resource_id=req.resource_id,
                max_steps=req.max_steps,
            )
        except AgentError as e:
            logger.warning("Agent generate failed", extra={"agent": name, "error": str(e)})
            raise HTTPException(status_code=502, detail=str(e)) from e

        return GenerateResponse(
            agent=name,
            text=response.text,
            thread_id=response.thread_id,
            steps=response.steps,
            tool_calls=[
                ApiToolCall(name=c.name, arguments=c.arguments, result=c.result, error=c.error)
                for c in response.tool_calls
            ],
        )

    # ==================== workflows & runs ====================

    @app.get("/api/workflows")
    def list_workflows() -> list[dict[str, Any]]:
        return [w.describe() for w in application.workflows.values()]

    @app.get("/api/workflows/{workflow_id}")
    def get_workflow(workflow_id: str) -> dict[str, Any]:
        try:
            return application.get_workflow(workflow_id).describe()
        except NotRegisteredError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.post("/api/workflows/{workflow_id}/runs", response_model=WorkflowRun, status_code=202)
    def start_run(workflow_id: str, req: StartRunRequest, response: Response) -> WorkflowRun:
        try:
            if req.wait:
                response.status_code = 200
                return runner.start(workflow_id, req.input, trigger="api")
            run_id = dispatcher.submit(workflow_id, req.input, trigger="api")
        except NotRegisteredError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except ValidationError as e:
            raise HTTPException(
                status_code=422, detail=e.errors(include_url=False, include_context=False)
            ) from e
        return runner.get_run(run_id)

    @app.get("/api/workflows/{workflow_id}/runs", response_model=list[WorkflowRun])
    def list_runs(workflow_id: str) -> list[WorkflowRun]:
        if workflow_id not in application.workflows:
            raise HTTPException(status_code=404, detail=f"Unknown workflow: {workflow_id!r}")
        return runner.list_runs(workflow_id)

    @app.get("/api/runs/{run_id}", response_model=WorkflowRun)
    def get_run(run_id: str) -> WorkflowRun:
        try:
            return runner.get_run(run_id)
        except RunNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.post("/api/runs/{run_id}/resume", response_model=WorkflowRun, status_code=202)
    def resume_run(run_id: str, req: ResumeRunRequest, response: Response) -> WorkflowRun:
        try:
            if req.wait:
                response.status_code = 200
                return runner.resume(run_id, req.resume_data, step_id=req.step_id)
            return dispatcher.submit_resume(run_id, req.resume_data, step_id=req.step_id)
        except RunNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except InvalidResumeError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e

    @app.post("/api/runs/{run_id}/cancel", response_model=WorkflowRun)
    def cancel_run(run_id: str) -> WorkflowRun:
        try:
            return runner.cancel(run_id)
        except RunNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except IllegalTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e

    # ==================== triggers & memory ====================

    @app.get("/api/triggers")
    def list_triggers() -> list[dict[str, Any]]:
        return [describe_trigger(t) for t in application.triggers.values()]

    @app.get("/api/scheduler/jobs")
    def scheduler_jobs() -> list[dict[str, Any]]:
        return scheduler.jobs()

    @app.get("/api/threads/{thread_id}/messages", response_model=list[ApiMessage])
    def thread_messages(thread_id: str, limit: int | None = None) -> list[ApiMessage]:
        storage = application.storage
        if storage.get_thread(thread_id) is None:
            raise HTTPException(status_code=404, detail=f"Thread not found: {thread_id}")
        return [
            ApiMessage(id=m.id, role=m.role, content=m.content, created_at=m.created_at.isoformat())
            for m in storage.list_messages(thread_id, limit=limit)
        ]

    # ==================== webhooks ====================

    @app.post("/webhooks/{provider}/{action}")
    async def webhook(provider: str, action: str, request: Request) -> JSONResponse:
        body = await request.body()
        try:
            result = await run_in_threadpool(
                webhooks.handle, provider, action, dict(request.headers), body
            )
        except WebhookError as e:
            logger.warning(
                "Webhook rejected",
                extra={"provider": provider, "action": action, "status": e.status_code},
            )
            raise HTTPException(status_code=e.status_code, detail=e.detail) from e
        except ValidationError as e:
            raise HTTPException(
                status_code=422, detail=e.errors(include_url=False, include_context=False)
            ) from e

        if result.response is not None:
            return JSONResponse(result.response)
        payload = {"accepted": result.accepted, "trigger": result.trigger, "run_id": result.run_id}
        return JSONResponse(payload, status_code=202 if result.accepted else 200)

    return app
