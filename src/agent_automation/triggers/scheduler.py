"""Cron trigger scheduling on top of APScheduler."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from agent_automation.errors import NotRegisteredError
from agent_automation.triggers.models import CronTrigger, RunSubmitter

logger = logging.getLogger(__name__)


class CronScheduler:
    """Fire one background workflow run per cron tick.

    Jobs coalesce and never overlap: a tick missed while the previous firing is
    still submitting is dropped rather than queued.
    """

    def __init__(
        self,
        triggers: Iterable[CronTrigger],
        submit: RunSubmitter,
        *,
        timezone: str = "UTC",
        scheduler: BaseScheduler | None = None,
    ) -> None:
        self._triggers = {t.name: t for t in triggers}
        self._submit = submit
        self.timezone = timezone
        self.scheduler = scheduler or BackgroundScheduler(timezone=timezone)

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    def start(self) -> None:
        if self.running:
            return
        for trigger in self._triggers.values():
            self.scheduler.add_job(
                func=self.fire,
                trigger=trigger.schedule(self.timezone),
                args=[trigger.name],
                id=f"cron:{trigger.name}",
                name=f"{trigger.name} -> {trigger.workflow}",
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
        self.scheduler.start()
        logger.info("Cron scheduler started", extra={"jobs": len(self._triggers)})

    def shutdown(self, wait: bool = False) -> None:
        if not self.running:
            return
        self.scheduler.shutdown(wait=wait)
        logger.info("Cron scheduler stopped")

    def fire(self, name: str) -> str | None:
        """Submit a run for trigger `name`; called by APScheduler on each tick."""
        trigger = self._triggers.get(name)
        if trigger is None:
            raise NotRegisteredError("trigger", name)
        try:
            run_id = self._submit(trigger.workflow, dict(trigger.input), trigger=trigger.name)
        except Exception:
            # Scheduler threads have no caller to report to; log and wait for the next tick.
            logger.exception(
                "Cron trigger failed to start workflow",
                extra={"trigger": name, "workflow_id": trigger.workflow},
            )
            return None
        logger.info(
            "Cron trigger fired",
            extra={"trigger": name, "workflow_id": trigger.workflow, "run_id": run_id},
        )
        return run_id

    def jobs(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            out.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": next_run.isoformat() if next_run else None,
                }
            )
        return out
