"""Pydantic models for the REST server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str
    application: str
    version: str
    storage: str
    scheduler_running: bool


class GenerateRequest(BaseModel):
    message: str = Field(min_length=1)
    thread_id: str | None = None
    resource_id: str | None = None
    max_steps: int = Field(default=5, ge=1, le=25)


class ApiToolCall(BaseModel):
    name: str
    arguments: dict[str, Any]
    result: Any = None
    error: str | None = None


class GenerateResponse(BaseModel):
    agent: str
    text: str
    thread_id: str | None = None
    steps: int
    tool_calls: list[ApiToolCall] = Field(default_factory=list)


class StartRunRequest(BaseModel):
    input: dict[str, Any] = Field(default_factory=dict)
    wait: bool = False


class ResumeRunRequest(BaseModel):
    step_id: str | None = None
    resume_data: dict[str, Any] = Field(default_factory=dict)
    wait: bool = False


class ApiMessage(BaseModel):
    id: str
    role: str
    content: str
    created_at: str
