"""Source adapter contract and shared helpers."""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal, Protocol, runtime_checkable

from session_cloner.errors import ValidationError

SourceType = Literal["claude", "copilot"]

FIRST_MESSAGE_LENGTH = 100


@dataclass
class ProjectInfo:
    """A project folder (Claude) or workspace (Copilot) holding sessions."""

    folder: str
    path: str


@dataclass
class SessionSummary:
    """Listing row for one session."""

    session_id: str
    source: SourceType
    project_path: str
    first_message: str
    created_at: datetime
    last_modified_at: datetime
    size_bytes: int
    turn_count: int

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "source": self.source,
            "project_path": self.project_path,
            "first_message": self.first_message,
            "created_at": self.created_at.isoformat(),
            "last_modified_at": self.last_modified_at.isoformat(),
            "size_bytes": self.size_bytes,
            "turn_count": self.turn_count,
        }


@runtime_checkable
class SessionSource(Protocol):
    """Where sessions of one assistant live on disk."""

    source_type: SourceType

    def is_available(self) -> bool: ...

    def list_projects(self) -> list[ProjectInfo]: ...

    def list_sessions(self, folder: str) -> list[SessionSummary]: ...

    def find_session(self, session_id: str) -> str | None:
        """Return the folder holding ``session_id``, or None."""
        ...

    def session_path(self, folder: str, session_id: str) -> Path: ...


def truncate_message(text: str, max_length: int = FIRST_MESSAGE_LENGTH) -> str:
    """Collapse whitespace and cut to ``max_length`` (including the "...")."""
    cleaned = re.sub(r"\s+", " ", text.strip())
    if len(cleaned) <= max_length:
        return cleaned
    return cleaned[: max_length - 3] + "..."


def validate_folder_name(folder: str) -> None:
    """Reject names that could escape the storage directory.

    Raises:
        ValidationError: If the name contains ".." or a path separator
    """
    if not folder or ".." in folder or "/" in folder or "\\" in folder:
        raise ValidationError(f"Invalid folder name: {folder!r}")


_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def validate_session_id(session_id: str) -> None:
    """Session ids become file names; only accept plain identifiers.

    Raises:
        ValidationError: If the id is malformed
    """
    if not session_id or not _SESSION_ID_RE.match(session_id) or ".." in session_id:
        raise ValidationError(f"Malformed session id: {session_id!r}")
