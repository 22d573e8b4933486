"""
Session store for persistent chat history.

Each session is stored as one pretty-printed JSON file:

    <base_dir>/<session_id>.json

Writes go to a temporary file in the same directory and are moved over the
record with ``os.replace``, so readers never see a half-written session.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from chatkeep.core.titles import generate_title
from chatkeep.models.session import (
    DEFAULT_TITLE,
    Message,
    MessageInput,
    Session,
    SessionSummary,
    utcnow,
)

logger = logging.getLogger(__name__)

_SESSION_ID = re.compile(r"[A-Za-z0-9_-]+")
_RECORD_SUFFIX = ".json"


class SessionStoreError(Exception):
    """Base class for session store failures."""


class SessionWriteError(SessionStoreError):
    """
    Raised when a session could not be persisted.

    The in-memory session still reflects the attempted change and is
    available as ``session``; the record on disk may be stale.
    """

    def __init__(self, session_id: str, session: Session):
        self.session_id = session_id
        self.session = session
        super().__init__(f"Failed to persist session '{session_id}'")


@dataclass
class _SessionLock:
    lock: threading.Lock
    users: int = 0


class SessionStore:
    """
    Manages chat session persistence in a directory of JSON records.

    Mutations of the same session are serialized with a per-session lock,
    so concurrent appends from several threads are all retained.
    """

    def __init__(
        self,
        base_dir: Path | None = None,
        default_title: str = DEFAULT_TITLE,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize the session store.

        Args:
            base_dir: Directory holding session records (default: .chatkeep/sessions)
            default_title: Placeholder title for new sessions
            clock: Source of the current UTC time (default: datetime.now(UTC))
        """
        if base_dir is None:
            base_dir = Path(".chatkeep/sessions")
        self.base_dir = Path(base_dir)
        self.default_title = default_title
        self._clock = clock or utcnow
        self._lock = threading.Lock()
        self._session_locks: dict[str, _SessionLock] = {}

    def _session_path(self, session_id: str) -> Path | None:
        """Get the record path for a session, or None for a malformed id."""
        if not _SESSION_ID.fullmatch(session_id):
            return None
        return self.base_dir / f"{session_id}{_RECORD_SUFFIX}"

    @contextmanager
    def _session_lock(self, session_id: str) -> Iterator[None]:
        """
        Serialize mutations of one session.

        Lock entries live only while a caller holds or waits on them.
        """
        with self._lock:
            entry = self._session_locks.get(session_id)
            if entry is None:
                entry = self._session_locks[session_id] = _SessionLock(threading.Lock())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._session_locks[session_id]

    def create_session(self, title: str | None = None) -> Session:
        """
        Create and persist a new, empty session.

        Args:
            title: Explicit title (default: the placeholder title)

        Returns:
            The newly created session

        Raises:
            SessionWriteError: If the session could not be written
        """
        now = self._clock()
        session = Session(
            title=title or self.default_title,
            created_at=now,
            updated_at=now,
        )
        if not self.save_session(session):
            raise SessionWriteError(session.id, session)
        logger.debug("Created session %s", session.id)
        return session

    def load_session(self, session_id: str) -> Session | None:
        """
        Load a session from disk.

        Args:
            session_id: Session ID to load

        Returns:
            The loaded session, or None if it is missing or unreadable
        """
        path = self._session_path(session_id)
        if path is None:
            return None

        try:
            raw = path.read_bytes()
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            logger.warning("Failed to read session %s: %s", session_id, e)
            return None

        try:
            return Session.from_record(raw)
        except ValidationError as e:
            logger.warning("Skipping corrupt session %s: %s", session_id, e)
            return None

    def save_session(self, session: Session) -> bool:
        """
        Write the full session record, replacing any previous version.

        Args:
            session: The session to persist

        Returns:
            True if the record was written, False on failure (logged)
        """
        path = self._session_path(session.id)
        if path is None:
            logger.error("Refusing to save session with invalid id %r", session.id)
            return False

        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{session.id}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(session.to_record())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            return True
        except OSError as e:
            logger.error("Failed to save session %s: %s", session.id, e)
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
            return False

    def append_message(
        self,
        session_id: str,
        message: MessageInput | Mapping[str, Any],
    ) -> Session | None:
        """
        Append a message to a stored session and persist it.

        The message gets a fresh id and the current time as its timestamp.
        If the session still has the placeholder title, a title is derived
        from the first user message.

        Args:
            session_id: Session to append to
            message: Role, content and optional image fields

        Returns:
            The updated session, or None if the session does not exist

        Raises:
            pydantic.ValidationError: If the message fields are invalid
            SessionWriteError: If the updated session could not be written
        """
        if not isinstance(message, MessageInput):
            message = MessageInput.model_validate(message)

        with self._session_lock(session_id):
            session = self.load_session(session_id)
            if session is None:
                return None

            now = self._clock()
            if now <= session.updated_at:
                now = session.updated_at + timedelta(microseconds=1)

            session.messages.append(Message.from_input(message, timestamp=now))
            session.updated_at = now

            if not session.title or session.title == self.default_title:
                self._update_title(session)

            if not self.save_session(session):
                raise SessionWriteError(session_id, session)

        return session

    def _update_title(self, session: Session) -> None:
        """Derive the title from the first user message that is not blank."""
        for message in session.messages:
            if message.role != "user":
                continue
            title = generate_title(message.content)
            if title:
                session.title = title
                return

    def list_sessions(self) -> list[Session]:
        """
        Load all stored sessions.

        Unreadable records are skipped.

        Returns:
            Sessions sorted by updated_at (newest first)
        """
        if not self.base_dir.is_dir():
            return []

        sessions: list[Session] = []
        for path in sorted(self.base_dir.glob(f"*{_RECORD_SUFFIX}")):
            session = self.load_session(path.stem)
            if session is not None:
                sessions.append(session)

        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    def list_summaries(self) -> list[SessionSummary]:
        """List metadata of all sessions, newest first."""
        return [s.to_summary() for s in self.list_sessions()]

    def search_sessions(self, query: str) -> list[Session]:
        """
        Find sessions whose title or any message contains the query.

        Matching is a case-insensitive substring test. An empty query
        matches every session.

        Args:
            query: Text to look for

        Returns:
            Matching sessions, newest first
        """
        needle = query.lower()
        results = []
        for session in self.list_sessions():
            if needle in session.title.lower() or any(
                needle in m.content.lower() for m in session.messages
            ):
                results.append(session)
        return results

    def search_summaries(self, query: str) -> list[SessionSummary]:
        """Search sessions and return their summaries."""
        return [s.to_summary() for s in self.search_sessions(query)]

    def get_summary(self, session_id: str) -> SessionSummary | None:
        """
        Get the metadata of a session without its messages.

        Returns:
            The summary, or None if the session does not exist
        """
        session = self.load_session(session_id)
        if session is None:
            return None
        return session.to_summary()

    def delete_session(self, session_id: str) -> bool:
        """
        Delete a session record.

        Args:
            session_id: Session ID to delete

        Returns:
            True if deleted, False if not found or not removable
        """
        path = self._session_path(session_id)
        if path is None:
            return False

        with self._session_lock(session_id):
            try:
                path.unlink()
            except (FileNotFoundError, NotADirectoryError):
                return False
            except OSError as e:
                logger.error("Failed to delete session %s: %s", session_id, e)
                return False
        logger.debug("Deleted session %s", session_id)
        return True

    def delete_all_sessions(self) -> int:
        """
        Delete every stored session.

        Returns:
            Number of sessions deleted
        """
        count = 0
        for session in self.list_sessions():
            if self.delete_session(session.id):
                count += 1
        return count

    def cleanup(self, max_age_days: int = 30) -> int:
        """
        Delete sessions that have not been updated recently.

        A session is removed when its updated_at is strictly before
        now minus max_age_days.

        Args:
            max_age_days: Age threshold in days

        Returns:
            Number of sessions actually deleted
        """
        if max_age_days < 0:
            raise ValueError("max_age_days must be >= 0")

        try:
            cutoff = self._clock() - timedelta(days=max_age_days)
        except OverflowError:
            cutoff = datetime.min.replace(tzinfo=UTC)
        count = 0
        for session in self.list_sessions():
            if session.updated_at < cutoff and self.delete_session(session.id):
                count += 1

        if count:
            logger.info("Cleaned up %d session(s) older than %d day(s)", count, max_age_days)
        return count

    def export_session(self, session_id: str, fmt: str = "markdown") -> str | None:
        """
        Export a session to a string in the specified format.

        Args:
            session_id: Session ID to export
            fmt: Export format ('markdown' or 'json')

        Returns:
            Formatted string, or None if session not found
        """
        session = self.load_session(session_id)
        if session is None:
            return None

        if fmt == "json":
            return json.dumps(
                session.model_dump(mode="json", by_alias=True, exclude_none=True),
                indent=2,
            )
        if fmt != "markdown":
            raise ValueError(f"Unknown export format: {fmt}")

        lines = [
            f"# {session.title}",
            "",
            f"**Session:** {session.id}  ",
            f"**Created:** {session.created_at.strftime('%Y-%m-%d %H:%M')}  ",
            f"**Updated:** {session.updated_at.strftime('%Y-%m-%d %H:%M')}  ",
            f"**Messages:** {session.message_count}",
            "",
            "---",
            "",
        ]

        for msg in session.messages:
            speaker = "You" if msg.role == "user" else "Assistant"
            lines.append(f"**{speaker}:** {msg.content}\n")
            if msg.type == "image":
                lines.append(f"![image]({msg.image_url})\n")

        return "\n".join(lines)
