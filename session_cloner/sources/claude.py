"""Claude Code session source.

Sessions live at ``<claude_dir>/projects/<folder>/<session-id>.jsonl``,
where ``folder`` is the project path with every "/" replaced by "-".
"""

from datetime import datetime
from pathlib import Path

from session_cloner.config import Config
from session_cloner.log_config import get_logger
from session_cloner.models import SessionEntry, get_content
from session_cloner.session_io import iter_jsonl_lenient
from session_cloner.sources.base import (
    ProjectInfo,
    SessionSummary,
    truncate_message,
    validate_folder_name,
    validate_session_id,
)
from session_cloner.turns import identify_turns

log = get_logger("sources.claude")


def decode_folder_name(encoded: str) -> str:
    """Turn "-Users-dev-app" back into "/Users/dev/app".

    Lossy for paths whose components contain dashes.
    """
    if encoded.startswith("-"):
        encoded = "/" + encoded[1:]
    return encoded.replace("-", "/")


def encode_folder_path(path: str) -> str:
    return path.replace("/", "-")


def first_user_text(entry: SessionEntry) -> str:
    content = get_content(entry)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                return block.get("text") or ""
    return ""


class ClaudeSessionSource:
    """Claude Code sessions under ``Config.projects_dir``."""

    source_type = "claude"

    def __init__(self, config: Config | None = None):
        self.config = config or Config()

    @property
    def projects_dir(self) -> Path:
        return self.config.projects_dir

    def is_available(self) -> bool:
        return self.projects_dir.is_dir()

    def list_projects(self) -> list[ProjectInfo]:
        if not self.is_available():
            return []
        projects = [
            ProjectInfo(folder=p.name, path=decode_folder_name(p.name))
            for p in self.projects_dir.iterdir()
            if p.is_dir()
        ]
        return sorted(projects, key=lambda p: p.path)

    def session_path(self, folder: str, session_id: str) -> Path:
        validate_folder_name(folder)
        validate_session_id(session_id)
        return self.projects_dir / folder / f"{session_id}.jsonl"

    def find_session(self, session_id: str) -> str | None:
        validate_session_id(session_id)
        if not self.is_available():
            return None
        for project in sorted(self.projects_dir.iterdir()):
            if project.is_dir() and (project / f"{session_id}.jsonl").is_file():
                return project.name
        return None

    def list_sessions(self, folder: str) -> list[SessionSummary]:
        """Summaries of every session in a project, most recent first.

        Malformed lines are skipped with a warning.
        """
        validate_folder_name(folder)
        project_dir = self.projects_dir / folder
        project_path = decode_folder_name(folder)

        sessions = [
            self._summarize(path, project_path)
            for path in project_dir.glob("*.jsonl")
            if path.is_file()
        ]
        return sorted(sessions, key=lambda s: s.last_modified_at, reverse=True)

    def _summarize(self, path: Path, project_path: str) -> SessionSummary:
        entries = list(iter_jsonl_lenient(path))

        first_message = "(No user message)"
        for entry in entries:
            if entry.get("type") == "user":
                text = first_user_text(entry)
                if text:
                    first_message = truncate_message(text)
                    break

        stat = path.stat()
        # st_birthtime only exists on some platforms
        created = getattr(stat, "st_birthtime", None) or stat.st_mtime
        return SessionSummary(
            session_id=path.stem,
            source="claude",
            project_path=project_path,
            first_message=first_message,
            created_at=datetime.fromtimestamp(created),
            last_modified_at=datetime.fromtimestamp(stat.st_mtime),
            size_bytes=stat.st_size,
            turn_count=len(identify_turns(entries)),
        )
