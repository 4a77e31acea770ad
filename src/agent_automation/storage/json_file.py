"""JSON-file backed storage.

Each collection is a single JSON document under the storage directory. Writes
rewrite the whole file under a process-wide lock, which is adequate for a
single local process. Use a SQL URL for anything shared.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agent_automation.storage.base import Storage, tail
from agent_automation.storage.models import StoredMessage, Thread
from agent_automation.workflows.state import WorkflowRun


@dataclass
class JsonFileStorage(Storage):
    root: Path

    kind = "file"

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def threads_file(self) -> Path:
        return self.root / "threads.json"

    @property
    def messages_file(self) -> Path:
        return self.root / "messages.json"

    @property
    def runs_file(self) -> Path:
        return self.root / "runs.json"

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _read_unlocked(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return []
        if not isinstance(raw, list):
            return []
        return [item for item in raw if isinstance(item, dict)]

    def _write_unlocked(self, path: Path, items: list[dict[str, Any]]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(items, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        tmp.replace(path)

    def _upsert(self, path: Path, key: str, item: dict[str, Any]) -> None:
        with self._lock:
            items = self._read_unlocked(path)
            for idx, existing in enumerate(items):
                if existing.get(key) == item[key]:
                    items[idx] = item
                    break
            else:
                items.append(item)
            self._write_unlocked(path, items)

    def save_thread(self, thread: Thread) -> Thread:
        self._upsert(self.threads_file, "id", thread.model_dump(mode="json"))
        return thread

    def get_thread(self, thread_id: str) -> Thread | None:
        for thread in self.list_threads():
            if thread.id == thread_id:
                return thread
        return None

    def list_threads(self, resource_id: str | None = None) -> list[Thread]:
        with self._lock:
            raw = self._read_unlocked(self.threads_file)
        threads = [Thread.model_validate(item) for item in raw]
        return [t for t in threads if resource_id is None or t.resource_id == resource_id]

    def append_messages(self, thread_id: str, messages: Sequence[StoredMessage]) -> None:
        with self._lock:
            items = self._read_unlocked(self.messages_file)
            items.extend(
                m.model_copy(update={"thread_id": thread_id}).model_dump(mode="json")
                for m in messages
            )
            self._write_unlocked(self.messages_file, items)

    def list_messages(self, thread_id: str, limit: int | None = None) -> list[StoredMessage]:
        with self._lock:
            raw = self._read_unlocked(self.messages_file)
        messages = [
            StoredMessage.model_validate(item) for item in raw if item.get("thread_id") == thread_id
        ]
        return tail(messages, limit)

    def save_run(self, run: WorkflowRun) -> None:
        self._upsert(self.runs_file, "run_id", run.model_dump(mode="json"))

    def get_run(self, run_id: str) -> WorkflowRun | None:
        with self._lock:
            raw = self._read_unlocked(self.runs_file)
        for item in raw:
            if item.get("run_id") == run_id:
                return WorkflowRun.model_validate(item)
        return None

    def list_runs(self, workflow_id: str | None = None) -> list[WorkflowRun]:
        with self._lock:
            raw = self._read_unlocked(self.runs_file)
        runs = [WorkflowRun.model_validate(item) for item in raw]
        runs = [r for r in runs if workflow_id is None or r.workflow_id == workflow_id]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)
