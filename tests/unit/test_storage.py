"""Unit tests for the storage backends and the DATABASE_URL factory."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest

from agent_automation.errors import ConfigurationError
from agent_automation.storage.base import Storage
from agent_automation.storage.factory import create_storage
from agent_automation.storage.json_file import JsonFileStorage
from agent_automation.storage.memory import InMemoryStorage
from agent_automation.storage.models import StoredMessage, Thread
from agent_automation.storage.sql import SqlStorage
from agent_automation.workflows.state import RunStatus, WorkflowRun, utc_now


@pytest.fixture(params=["memory", "file", "sql"])
def backend(request: pytest.FixtureRequest, tmp_path: Path) -> Storage:
    storage: Storage
    if request.param == "memory":
        storage = InMemoryStorage()
    elif request.param == "file":
        storage = JsonFileStorage(tmp_path / "state")
    else:
        storage = SqlStorage("sqlite://")
    storage.init()
    yield storage
    storage.close()


def test_threads_roundtrip(backend: Storage) -> None:
    backend.save_thread(Thread(id="t1", resource_id="user-1", title="Hello"))
    backend.save_thread(Thread(id="t2", resource_id="user-2"))
    backend.save_thread(Thread(id="t1", resource_id="user-1", title="Renamed"))

    thread = backend.get_thread("t1")
    assert thread is not None
    assert thread.title == "Renamed"
    assert backend.get_thread("missing") is None
    assert {t.id for t in backend.list_threads()} == {"t1", "t2"}
    assert [t.id for t in backend.list_threads("user-2")] == ["t2"]


def test_messages_are_ordered_and_limited(backend: Storage) -> None:
    backend.save_thread(Thread(id="t1"))
    backend.append_messages(
        "t1",
        [StoredMessage(thread_id="t1", role="user", content=f"m{i}") for i in range(5)],
    )
    backend.append_messages("t2", [StoredMessage(thread_id="t2", role="user", content="other")])

    assert [m.content for m in backend.list_messages("t1")] == ["m0", "m1", "m2", "m3", "m4"]
    assert [m.content for m in backend.list_messages("t1", limit=2)] == ["m3", "m4"]
    assert backend.list_messages("t1", limit=0) == []
    assert backend.list_messages("nobody") == []


def test_timestamps_come_back_as_utc(backend: Storage) -> None:
    paris = timezone(timedelta(hours=2))
    sent = datetime(2026, 5, 1, 14, 30, tzinfo=paris)
    backend.save_thread(Thread(id="t1", created_at=sent, updated_at=sent))
    backend.append_messages(
        "t1", [StoredMessage(thread_id="t1", role="user", content="hi", created_at=sent)]
    )

    thread = backend.get_thread("t1")
    [message] = backend.list_messages("t1")

    for value in (thread.created_at, thread.updated_at, message.created_at):
        assert value == sent
        assert value.tzinfo is UTC
        assert value.hour == 12


def test_runs_roundtrip_newest_first(backend: Storage) -> None:
    now = utc_now()
    older = WorkflowRun(run_id="r1", workflow_id="wf", created_at=now - timedelta(minutes=5))
    newer = WorkflowRun(run_id="r2", workflow_id="wf", created_at=now)
    other = WorkflowRun(run_id="r3", workflow_id="other", created_at=now)
    for run in (older, newer, other):
        backend.save_run(run)

    backend.save_run(older.model_copy(update={"status": RunStatus.RUNNING, "cursor": 1}))

    loaded = backend.get_run("r1")
    assert loaded is not None
    assert loaded.status is RunStatus.RUNNING
    assert loaded.cursor == 1
    assert backend.get_run("missing") is None
    assert [r.run_id for r in backend.list_runs("wf")] == ["r2", "r1"]
    assert len(backend.list_runs()) == 3


def test_json_storage_tolerates_corrupt_files(tmp_path: Path) -> None:
    storage = JsonFileStorage(tmp_path)
    (tmp_path / "runs.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "threads.json").write_text('{"not": "a list"}', encoding="utf-8")

    assert storage.list_runs() == []
    assert storage.list_threads() == []


def test_json_storage_persists_across_instances(tmp_path: Path) -> None:
    JsonFileStorage(tmp_path).save_run(WorkflowRun(run_id="r1", workflow_id="wf"))
    assert JsonFileStorage(tmp_path).get_run("r1") is not None


@pytest.mark.parametrize(
    ("url", "kind"),
    [
        ("memory://", "memory"),
        ("sqlite://", "sql"),
        ("sqlite+pysqlite:///:memory:", "sql"),
    ],
)
def test_create_storage_selects_backend(url: str, kind: str) -> None:
    storage = create_storage(url)
    assert storage.kind == kind
    storage.close()


def test_create_storage_file_url(tmp_path: Path) -> None:
    storage = create_storage(f"file://{tmp_path / 'state'}")

    assert isinstance(storage, JsonFileStorage)
    assert storage.root == tmp_path / "state"
    assert (tmp_path / "state").is_dir()


def test_create_storage_sqlite_file(tmp_path: Path) -> None:
    storage = create_storage(f"sqlite:///{tmp_path / 'state.db'}")
    storage.save_run(WorkflowRun(run_id="r1", workflow_id="wf"))
    storage.close()

    reopened = create_storage(f"sqlite:///{tmp_path / 'state.db'}")
    assert reopened.get_run("r1") is not None
    reopened.close()


@pytest.mark.parametrize("url", ["", "   ", "redis://localhost", "file://", "nonsense"])
def test_create_storage_rejects_unknown_urls(url: str) -> None:
    with pytest.raises(ConfigurationError):
        create_storage(url)
