"""Storage interface shared by every persistence backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from agent_automation.storage.models import StoredMessage, Thread
from agent_automation.workflows.state import WorkflowRun


class Storage(ABC):
    """Persistence for threads, messages, and workflow run snapshots.

    An application holds exactly one storage handle; agents use it for memory
    and the workflow runner uses it for run snapshots.
    """

    #: Backend name reported by health checks and the build manifest.
    kind: str = "abstract"

    def init(self) -> None:
        """Prepare the backend (create tables, directories). Idempotent."""

    def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    def save_thread(self, thread: Thread) -> Thread: ...

    @abstractmethod
    def get_thread(self, thread_id: str) -> Thread | None: ...

    @abstractmethod
    def list_threads(self, resource_id: str | None = None) -> list[Thread]: ...

    @abstractmethod
    def append_messages(self, thread_id: str, messages: Sequence[StoredMessage]) -> None: ...

    @abstractmethod
    def list_messages(self, thread_id: str, limit: int | None = None) -> list[StoredMessage]:
        """Return messages oldest-first; `limit` keeps only the most recent ones."""

    @abstractmethod
    def save_run(self, run: WorkflowRun) -> None: ...

    @abstractmethod
    def get_run(self, run_id: str) -> WorkflowRun | None: ...

    @abstractmethod
    def list_runs(self, workflow_id: str | None = None) -> list[WorkflowRun]:
        """Return runs newest-first, optionally filtered by workflow."""


def tail(messages: list[StoredMessage], limit: int | None) -> list[StoredMessage]:
    if limit is None:
        return messages
    if limit <= 0:
        return []
    return messages[-limit:]
