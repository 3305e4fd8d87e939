"""Session sources: where each assistant keeps its conversation logs."""

from session_cloner.config import Config
from session_cloner.errors import ValidationError
from session_cloner.sources.base import (
    ProjectInfo,
    SessionSource,
    SessionSummary,
    SourceType,
    truncate_message,
    validate_folder_name,
    validate_session_id,
)
from session_cloner.sources.claude import ClaudeSessionSource
from session_cloner.sources.copilot import CopilotSessionSource


def get_session_source(source_type: str, config: Config | None = None) -> SessionSource:
    """Return the adapter for "claude" or "copilot".

    Raises:
        ValidationError: For any other source type
    """
    if source_type == "claude":
        return ClaudeSessionSource(config)
    if source_type == "copilot":
        return CopilotSessionSource(config)
    raise ValidationError(f"Unknown session source: {source_type!r}")


__all__ = [
    "ClaudeSessionSource",
    "CopilotSessionSource",
    "ProjectInfo",
    "SessionSource",
    "SessionSummary",
    "SourceType",
    "get_session_source",
    "truncate_message",
    "validate_folder_name",
    "validate_session_id",
]
