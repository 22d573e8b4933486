"""Data models for chatkeep."""

from chatkeep.models.session import (
    DEFAULT_TITLE,
    Message,
    MessageInput,
    Session,
    SessionSummary,
)

__all__ = [
    "DEFAULT_TITLE",
    "Message",
    "MessageInput",
    "Session",
    "SessionSummary",
]
