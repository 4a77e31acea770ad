"""Background execution of workflow runs for the server and triggers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any

from agent_automation.workflows.runner import WorkflowRunner
from agent_automation.workflows.state import WorkflowRun

logger = logging.getLogger(__name__)


class RunDispatcher:
    """Claim a run synchronously, execute it on a daemon thread.

    Creating (or claiming, for resumes) the run up front means callers get a
    run id and any validation or state error immediately; execution progress
    is read back from storage.
    """

    def __init__(self, runner: WorkflowRunner) -> None:
        self.runner = runner
        self._threads: set[threading.Thread] = set()
        self._lock = threading.Lock()

    def submit(
        self,
        workflow_id: str,
        input_data: Mapping[str, Any] | None = None,
        *,
        trigger: str | None = None,
    ) -> str:
        run = self.runner.create_run(workflow_id, input_data, trigger=trigger)
        self._spawn(run.run_id, self.runner.execute, run.run_id)
        return run.run_id

    def submit_resume(
        self,
        run_id: str,
        resume_data: Mapping[str, Any] | None = None,
        *,
        step_id: str | None = None,
    ) -> WorkflowRun:
        """Claim the suspended run now and continue it in the background.

        Raises:
            InvalidResumeError: If the run cannot be resumed (including when
                another resume already claimed it).
        """
        claim = self.runner.claim_resume(run_id, resume_data, step_id=step_id)
        self._spawn(run_id, self.runner.continue_run, claim)
        return claim.run

    def _spawn(self, run_id: str, target: Callable[..., Any], *args: Any) -> None:
        thread = threading.Thread(
            target=self._run,
            name=f"workflow-run-{run_id}",
            daemon=True,
            args=(run_id, target, args),
        )
        with self._lock:
            self._threads.add(thread)
        thread.start()

    def _run(self, run_id: str, target: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            target(*args)
        except Exception:
            logger.exception("Background workflow run crashed", extra={"run_id": run_id})
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._threads)

    def join(self, timeout: float | None = None) -> None:
        """Wait for in-flight runs; used on shutdown and in tests."""
        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            thread.join(timeout)
