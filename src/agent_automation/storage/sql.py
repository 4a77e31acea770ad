"""SQLAlchemy-backed storage for SQLite, Postgres, and other SQL databases.

Run snapshots are stored as JSON documents; only the columns needed for
lookups are broken out.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, create_engine, select
from sqlalchemy.engine import Dialect, Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from agent_automation.storage.base import Storage, tail
from agent_automation.storage.models import StoredMessage, Thread
from agent_automation.workflows.state import WorkflowRun

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class UtcDateTime(TypeDecorator[datetime]):
    """Timezone-aware UTC datetimes on every backend.

    SQLite has no timezone support and returns naive values; those are stored
    and read back as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        return _as_utc(value)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        return _as_utc(value)


class Base(DeclarativeBase):
    pass


class ThreadRow(Base):
    __tablename__ = "agent_threads"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime)


class MessageRow(Base):
    __tablename__ = "agent_messages"

    # Autoincrement key keeps insertion order stable when timestamps tie.
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True)
    thread_id: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime)

    __table_args__ = (Index("idx_agent_messages_thread", "thread_id", "seq"),)


class WorkflowRunRow(Base):
    __tablename__ = "workflow_runs"

    run_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    workflow_id: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(16))
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(UtcDateTime)
    updated_at: Mapped[datetime] = mapped_column(UtcDateTime)


def build_engine(url: str) -> Engine:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if parsed.database in (None, "", ":memory:"):
            # A single shared connection, otherwise every session sees an empty database.
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


class SqlStorage(Storage):
    kind = "sql"

    def __init__(self, url: str, engine: Engine | None = None) -> None:
        self.url = url
        self.engine = engine or build_engine(url)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def init(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info(
            "SQL storage initialized",
            extra={"backend": self.engine.url.get_backend_name()},
        )

    def close(self) -> None:
        self.engine.dispose()

    def _session(self) -> Session:
        return self._sessions()

    # ==================== threads ====================

    def save_thread(self, thread: Thread) -> Thread:
        with self._session() as session, session.begin():
            session.merge(
                ThreadRow(
                    id=thread.id,
                    resource_id=thread.resource_id,
                    title=thread.title,
                    metadata_json=dict(thread.metadata),
                    created_at=thread.created_at,
                    updated_at=thread.updated_at,
                )
            )
        return thread

    def get_thread(self, thread_id: str) -> Thread | None:
        with self._session() as session:
            row = session.get(ThreadRow, thread_id)
            return _thread_from_row(row) if row else None

    def list_threads(self, resource_id: str | None = None) -> list[Thread]:
        stmt = select(ThreadRow).order_by(ThreadRow.created_at)
        if resource_id is not None:
            stmt = stmt.where(ThreadRow.resource_id == resource_id)
        with self._session() as session:
            return [_thread_from_row(row) for row in session.scalars(stmt)]

    # ==================== messages ====================

    def append_messages(self, thread_id: str, messages: Sequence[StoredMessage]) -> None:
        with self._session() as session, session.begin():
            session.add_all(
                MessageRow(
                    id=m.id,
                    thread_id=thread_id,
                    role=m.role,
                    content=m.content,
                    created_at=m.created_at,
                )
                for m in messages
            )

    def list_messages(self, thread_id: str, limit: int | None = None) -> list[StoredMessage]:
        stmt = select(MessageRow).where(MessageRow.thread_id == thread_id).order_by(MessageRow.seq)
        with self._session() as session:
            messages = [
                StoredMessage(
                    id=row.id,
                    thread_id=row.thread_id,
                    role=row.role,  # type: ignore[arg-type]
                    content=row.content,
                    created_at=row.created_at,
                )
                for row in session.scalars(stmt)
            ]
        return tail(messages, limit)

    # ==================== runs ====================

    def save_run(self, run: WorkflowRun) -> None:
        with self._session() as session, session.begin():
            session.merge(
                WorkflowRunRow(
                    run_id=run.run_id,
                    workflow_id=run.workflow_id,
                    status=run.status.value,
                    snapshot=run.model_dump(mode="json"),
                    created_at=run.created_at,
                    updated_at=run.updated_at,
                )
            )

    def get_run(self, run_id: str) -> WorkflowRun | None:
        with self._session() as session:
            row = session.get(WorkflowRunRow, run_id)
            return WorkflowRun.model_validate(row.snapshot) if row else None

    def list_runs(self, workflow_id: str | None = None) -> list[WorkflowRun]:
        stmt = select(WorkflowRunRow).order_by(WorkflowRunRow.created_at.desc())
        if workflow_id is not None:
            stmt = stmt.where(WorkflowRunRow.workflow_id == workflow_id)
        with self._session() as session:
            return [WorkflowRun.model_validate(row.snapshot) for row in session.scalars(stmt)]


def _thread_from_row(row: ThreadRow) -> Thread:
    return Thread(
        id=row.id,
        resource_id=row.resource_id,
        title=row.title,
        metadata=dict(row.metadata_json or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
