"""Session assembly.

Gives the transformed entries a fresh identity: a new session id written
into every entry that carried one, and a leading summary record titled
after the first human message so the clone is recognisable in pickers.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from session_cloner.models import SessionEntry, get_content

TITLE_PREVIEW_LENGTH = 50
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def new_session_id() -> str:
    return str(uuid.uuid4())


def format_clone_timestamp(moment: datetime) -> str:
    """Short local timestamp such as "Dec 12 2:30pm"."""
    hour = moment.hour % 12 or 12
    suffix = "pm" if moment.hour >= 12 else "am"
    return f"{_MONTHS[moment.month - 1]} {moment.day} {hour}:{moment.minute:02d}{suffix}"


def generate_clone_title(
    first_user_message: str,
    now: datetime | None = None,
    max_length: int = TITLE_PREVIEW_LENGTH,
) -> str:
    """Build "Clone: <preview> (<timestamp>)".

    The preview is the trimmed message, cut to ``max_length`` characters with
    "..." appended when longer, or "(No message)" when empty.
    """
    trimmed = (first_user_message or "").strip()
    if not trimmed:
        preview = "(No message)"
    elif len(trimmed) <= max_length:
        preview = trimmed
    else:
        preview = trimmed[:max_length] + "..."
    return f"Clone: {preview} ({format_clone_timestamp(now or datetime.now())})"


def extract_first_user_message(entries: list[SessionEntry]) -> str:
    """Text of the first user entry that has content (first text block for lists)."""
    for entry in entries:
        if entry.get("type") != "user":
            continue
        content = get_content(entry)
        if not content:
            continue
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            for block in content:
                if isinstance(block, dict) and block.get("type") == "text":
                    text = block.get("text")
                    return text if isinstance(text, str) else ""
        return ""
    return ""


def create_summary_entry(
    entries: list[SessionEntry], first_user_message: str, now: datetime | None = None
) -> SessionEntry:
    """Summary record pointing at the earliest surviving uuid (or a fresh one)."""
    leaf_uuid = next((e["uuid"] for e in entries if e.get("uuid")), None) or str(uuid.uuid4())
    return {
        "type": "summary",
        "summary": generate_clone_title(first_user_message, now),
        "leafUuid": leaf_uuid,
    }


def rewrite_session_id(entries: list[SessionEntry], session_id: str) -> list[SessionEntry]:
    """Set sessionId on entries that had a non-null one; others pass through."""
    return [
        {**entry, "sessionId": session_id} if entry.get("sessionId") is not None else entry
        for entry in entries
    ]


@dataclass
class AssembledSession:
    """Final entry list of a clone, summary record first."""

    session_id: str
    entries: list[SessionEntry]
    summary: SessionEntry

    @property
    def body(self) -> list[SessionEntry]:
        """Entries without the leading summary record."""
        return self.entries[1:]


def assemble_session(
    source_entries: list[SessionEntry],
    entries: list[SessionEntry],
    session_id: str | None = None,
    now: datetime | None = None,
) -> AssembledSession:
    """Give transformed entries a new identity and a leading summary record.

    Args:
        source_entries: Entries as loaded, used for the clone title
        entries: Entries after removal, repair and compression
        session_id: Identifier to use (a new uuid4 when omitted)
        now: Clock override for the title timestamp

    Returns:
        AssembledSession ready for serialize_jsonl
    """
    session_id = session_id or new_session_id()
    body = rewrite_session_id(entries, session_id)
    summary = create_summary_entry(body, extract_first_user_message(source_entries), now)
    return AssembledSession(session_id=session_id, entries=[summary, *body], summary=summary)


def assemble_copilot_session(
    source_doc: dict[str, Any],
    requests: list[dict[str, Any]],
    session_id: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build a cloned Copilot document around the transformed requests.

    Every top-level field of the source is kept; identity, dates, title and
    the import flag are replaced.
    """
    moment = now or datetime.now()
    now_ms = int(moment.timestamp() * 1000) if now else int(time.time() * 1000)

    source_requests = source_doc.get("requests") or []
    first = ""
    if source_requests and isinstance(source_requests[0], dict):
        message = source_requests[0].get("message")
        if isinstance(message, dict) and isinstance(message.get("text"), str):
            first = message["text"]

    return {
        **source_doc,
        "requests": requests,
        "sessionId": session_id or new_session_id(),
        "creationDate": now_ms,
        "lastMessageDate": now_ms,
        "customTitle": generate_clone_title(first, moment),
        "isImported": False,
    }
