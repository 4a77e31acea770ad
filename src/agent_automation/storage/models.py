"""Records persisted for agent memory."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, Field

MessageRole = Literal["system", "user", "assistant", "tool"]


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# Naive values are taken as UTC; aware ones are converted.
UtcDatetime = Annotated[datetime, AfterValidator(_to_utc)]


class Thread(BaseModel):
    """A conversation thread owned by a resource (user, chat, channel)."""

    id: str
    resource_id: str | None = None
    title: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: UtcDatetime = Field(default_factory=_now)
    updated_at: UtcDatetime = Field(default_factory=_now)


class StoredMessage(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    thread_id: str
    role: MessageRole
    content: str
    created_at: UtcDatetime = Field(default_factory=_now)

    def to_chat_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}
