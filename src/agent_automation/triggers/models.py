"""Trigger declarations: bindings from schedules and webhooks to workflows."""

from __future__ import annotations

import re
from typing import Any, Literal, Protocol

from apscheduler.triggers.cron import CronTrigger as ScheduleTrigger
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from agent_automation.naming import validate_name

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


class RunSubmitter(Protocol):
    """Starts a workflow run in the background and returns its run id."""

    def __call__(
        self, workflow_id: str, input_data: dict[str, Any], *, trigger: str | None = None
    ) -> str: ...


class CronTrigger(BaseModel):
    """Run `workflow` with `input` on a five-field crontab schedule."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["cron"] = "cron"
    name: str
    cron: str
    workflow: str
    input: dict[str, Any] = Field(default_factory=dict)
    timezone: str | None = None

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        return validate_name(value, "Trigger")

    @field_validator("cron")
    @classmethod
    def _valid_cron(cls, value: str) -> str:
        expr = " ".join(value.split())
        try:
            ScheduleTrigger.from_crontab(expr)
        except ValueError as e:
            raise ValueError(f"Invalid cron expression {value!r}: {e}") from e
        return expr

    def schedule(self, default_timezone: str = "UTC") -> ScheduleTrigger:
        return ScheduleTrigger.from_crontab(self.cron, timezone=self.timezone or default_timezone)


class WebhookTrigger(BaseModel):
    """Run `workflow` when `POST /webhooks/{provider}/{action}` is called."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["webhook"] = "webhook"
    provider: str
    action: str
    workflow: str
    name: str = ""

    @field_validator("provider", "action")
    @classmethod
    def _slug(cls, value: str) -> str:
        value = value.strip().lower()
        if not _SLUG_RE.match(value):
            raise ValueError(f"{value!r} must be a URL slug (a-z, 0-9, '-', '_')")
        return value

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name"):
            provider = str(data.get("provider", "")).strip().lower()
            action = str(data.get("action", "")).strip().lower()
            data = {**data, "name": f"{provider}.{action}"}
        return data

    @property
    def route(self) -> str:
        return f"/webhooks/{self.provider}/{self.action}"


Trigger = CronTrigger | WebhookTrigger
