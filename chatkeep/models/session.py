"""
Session models for persistent chat history.

Records are persisted with camelCase keys (``createdAt``, ``imageUrl``...)
so they stay readable by the chat UI; Python code uses snake_case.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_TITLE = "New Chat"

Role = Literal["user", "assistant"]
MessageType = Literal["text", "image"]


def utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


def _as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageInput(_Record):
    """
    Caller-supplied part of a message.

    The id and timestamp are assigned by the store when the message is appended.
    """

    role: Role
    content: str
    type: MessageType = "text"
    image_url: str | None = None
    thumbnail_url: str | None = None

    @model_validator(mode="after")
    def check_image_fields(self) -> MessageInput:
        if self.type == "image" and not self.image_url:
            raise ValueError("image messages require image_url")
        if self.type == "text" and (self.image_url or self.thumbnail_url):
            raise ValueError("image_url and thumbnail_url are only allowed on image messages")
        return self


class Message(_Record):
    """A single stored turn in a conversation."""

    id: str = Field(default_factory=_new_id)
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    type: MessageType = "text"
    image_url: str | None = None
    thumbnail_url: str | None = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @classmethod
    def from_input(cls, data: MessageInput, timestamp: datetime) -> Message:
        """Build a stored message from caller input with a fresh id."""
        return cls(timestamp=timestamp, **data.model_dump())


class SessionSummary(_Record):
    """Metadata-only view of a session, used for listings."""

    id: str
    title: str
    updated_at: datetime
    message_count: int


class Session(_Record):
    """A conversation session with its ordered message history."""

    id: str = Field(default_factory=_new_id)
    title: str = DEFAULT_TITLE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    messages: list[Message] = Field(default_factory=list)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @computed_field(alias="messageCount")
    @property
    def message_count(self) -> int:
        return len(self.messages)

    def to_summary(self) -> SessionSummary:
        return SessionSummary(
            id=self.id,
            title=self.title,
            updated_at=self.updated_at,
            message_count=self.message_count,
        )

    def to_record(self) -> str:
        """Serialize to the on-disk JSON record."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    @classmethod
    def from_record(cls, raw: str | bytes) -> Session:
        """Parse an on-disk JSON record, restoring all timestamps."""
        return cls.model_validate_json(raw)
