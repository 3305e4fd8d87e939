"""VS Code Copilot session source.

Sessions live at ``<workspaceStorage>/<hash>/chatSessions/<session-id>.json``;
each workspace's ``workspace.json`` names the folder it belongs to.
"""

import json
from datetime import datetime
from pathlib import Path
from urllib.parse import unquote

from session_cloner.config import Config
from session_cloner.errors import SessionParseError
from session_cloner.log_config import get_logger
from session_cloner.session_io import load_copilot_document
from session_cloner.sources.base import (
    ProjectInfo,
    SessionSummary,
    truncate_message,
    validate_folder_name,
    validate_session_id,
)

log = get_logger("sources.copilot")


def extract_path_from_uri(folder_uri: str) -> str:
    """"file:///Users/dev/my%20app" -> "/Users/dev/my app"."""
    path = folder_uri[len("file://"):] if folder_uri.startswith("file://") else folder_uri
    path = unquote(path)
    # /c:/... on Windows
    if len(path) > 2 and path[0] == "/" and path[2] == ":" and path[1].isalpha():
        path = path[1:]
    return path


def count_turns(doc: dict) -> int:
    return sum(1 for r in doc.get("requests") or [] if isinstance(r, dict) and not r.get("isCanceled"))


def extract_first_message(doc: dict) -> str:
    requests = doc.get("requests") or []
    if not requests:
        return "(No messages)"
    message = requests[0].get("message") if isinstance(requests[0], dict) else None
    text = message.get("text") if isinstance(message, dict) else ""
    return truncate_message(text if isinstance(text, str) else "")


class CopilotSessionSource:
    """Copilot chat sessions under ``Config.vscode_storage_path``."""

    source_type = "copilot"

    def __init__(self, config: Config | None = None):
        self.config = config or Config()

    @property
    def storage_path(self) -> Path:
        return self.config.vscode_storage_path

    def is_available(self) -> bool:
        return self.storage_path.is_dir()

    def _workspace_folder(self, workspace: Path) -> str:
        config = json.loads((workspace / "workspace.json").read_text(encoding="utf-8"))
        return extract_path_from_uri(config.get("folder") or "")

    def list_projects(self) -> list[ProjectInfo]:
        if not self.is_available():
            return []
        projects = []
        for workspace in self.storage_path.iterdir():
            if not workspace.is_dir() or not (workspace / "chatSessions").is_dir():
                continue
            try:
                projects.append(ProjectInfo(folder=workspace.name, path=self._workspace_folder(workspace)))
            except (OSError, ValueError, AttributeError) as e:
                log.debug(f"Skipping workspace {workspace.name}: {e}")
        return sorted(projects, key=lambda p: p.path)

    def session_path(self, folder: str, session_id: str) -> Path:
        validate_folder_name(folder)
        validate_session_id(session_id)
        return self.storage_path / folder / "chatSessions" / f"{session_id}.json"

    def find_session(self, session_id: str) -> str | None:
        validate_session_id(session_id)
        if not self.is_available():
            return None
        for workspace in sorted(self.storage_path.iterdir()):
            if workspace.is_dir() and (workspace / "chatSessions" / f"{session_id}.json").is_file():
                return workspace.name
        return None

    def list_sessions(self, folder: str) -> list[SessionSummary]:
        """Summaries of every chat session in a workspace, most recent first.

        Unreadable session files are skipped with a warning.
        """
        validate_folder_name(folder)
        workspace = self.storage_path / folder
        try:
            project_path = self._workspace_folder(workspace)
        except (OSError, ValueError, AttributeError) as e:
            log.warning(f"Unreadable workspace.json in {folder}, using the folder name: {e}")
            project_path = folder

        sessions = []
        for path in (workspace / "chatSessions").glob("*.json"):
            if not path.is_file():
                continue
            try:
                doc = load_copilot_document(path)
            except (OSError, SessionParseError) as e:
                log.warning(f"Failed to parse Copilot session {path.name}: {e}")
                continue

            stat = path.stat()
            created_ms = doc.get("creationDate")
            created = (
                datetime.fromtimestamp(created_ms / 1000)
                if isinstance(created_ms, (int, float))
                else datetime.fromtimestamp(stat.st_mtime)
            )
            sessions.append(
                SessionSummary(
                    session_id=path.stem,
                    source="copilot",
                    project_path=project_path,
                    first_message=extract_first_message(doc),
                    created_at=created,
                    last_modified_at=datetime.fromtimestamp(stat.st_mtime),
                    size_bytes=stat.st_size,
                    turn_count=count_turns(doc),
                )
            )
        return sorted(sessions, key=lambda s: s.last_modified_at, reverse=True)
