"""Process-local storage, used for tests and throwaway dev sessions."""

from __future__ import annotations

import threading
from collections.abc import Sequence

from agent_automation.storage.base import Storage, tail
from agent_automation.storage.models import StoredMessage, Thread
from agent_automation.workflows.state import WorkflowRun


class InMemoryStorage(Storage):
    kind = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._threads: dict[str, Thread] = {}
        self._messages: dict[str, list[StoredMessage]] = {}
        self._runs: dict[str, WorkflowRun] = {}

    def save_thread(self, thread: Thread) -> Thread:
        with self._lock:
            self._threads[thread.id] = thread.model_copy(deep=True)
            return thread

    def get_thread(self, thread_id: str) -> Thread | None:
        with self._lock:
            thread = self._threads.get(thread_id)
            return thread.model_copy(deep=True) if thread else None

    def list_threads(self, resource_id: str | None = None) -> list[Thread]:
        with self._lock:
            return [
                t.model_copy(deep=True)
                for t in self._threads.values()
                if resource_id is None or t.resource_id == resource_id
            ]

    def append_messages(self, thread_id: str, messages: Sequence[StoredMessage]) -> None:
        with self._lock:
            self._messages.setdefault(thread_id, []).extend(
                m.model_copy(update={"thread_id": thread_id}) for m in messages
            )

    def list_messages(self, thread_id: str, limit: int | None = None) -> list[StoredMessage]:
        with self._lock:
            return tail(list(self._messages.get(thread_id, [])), limit)

    def save_run(self, run: WorkflowRun) -> None:
        with self._lock:
            self._runs[run.run_id] = run.model_copy(deep=True)

    def get_run(self, run_id: str) -> WorkflowRun | None:
        with self._lock:
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run else None

    def list_runs(self, workflow_id: str | None = None) -> list[WorkflowRun]:
        with self._lock:
            runs = [
                r.model_copy(deep=True)
                for r in self._runs.values()
                if workflow_id is None or r.workflow_id == workflow_id
            ]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)
