"""Reading and writing session files.

Claude Code sessions are JSONL, one entry per line. Copilot sessions are a
single JSON document with a ``requests`` array. Both are written through
write_atomic so a failed clone never leaves a partial file behind.
"""

import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import orjson

from session_cloner.errors import SessionParseError
from session_cloner.log_config import get_logger
from session_cloner.models import SessionEntry

log = get_logger("session_io")


# ═══════════════════════════════════════════════════════════════════════════════
# JSONL (Claude Code)
# ═══════════════════════════════════════════════════════════════════════════════


def parse_jsonl(text: str, path: str = "<memory>") -> list[SessionEntry]:
    """Parse JSONL strictly.

    Blank lines are ignored. Any other line that is not a JSON object is
    fatal, since an entry that cannot be read cannot be placed in a
    rewritten chain.

    Raises:
        SessionParseError: With the 1-based line number of the bad record
    """
    entries: list[SessionEntry] = []
    for line_number, line in enumerate(text.split("\n"), start=1):
        if not line.strip():
            continue
        try:
            record = orjson.loads(line)
        except orjson.JSONDecodeError as e:
            raise SessionParseError(path, line_number, e.msg) from e
        if not isinstance(record, dict):
            raise SessionParseError(path, line_number, f"expected an object, got {type(record).__name__}")
        entries.append(record)
    return entries


def iter_jsonl_lenient(path: Path) -> Iterator[SessionEntry]:
    """Yield the readable records of a JSONL file, skipping bad lines with a warning."""
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                record = orjson.loads(line)
            except orjson.JSONDecodeError as e:
                log.warning(f"Skipping malformed record {path}:{line_number}: {e.msg}")
                continue
            if isinstance(record, dict):
                yield record
            else:
                log.warning(f"Skipping non-object record {path}:{line_number}")


def load_jsonl(path: Path) -> list[SessionEntry]:
    """Read and strictly parse a JSONL session file."""
    return parse_jsonl(Path(path).read_text(encoding="utf-8"), str(path))


def serialize_jsonl(entries: list[SessionEntry]) -> str:
    """One compact JSON record per line, with a trailing newline."""
    if not entries:
        return ""
    return "\n".join(orjson.dumps(entry).decode("utf-8") for entry in entries) + "\n"


# ═══════════════════════════════════════════════════════════════════════════════
# SINGLE DOCUMENT (Copilot)
# ═══════════════════════════════════════════════════════════════════════════════


def parse_copilot_document(text: str, path: str = "<memory>") -> dict[str, Any]:
    """Parse a Copilot chat session document.

    Raises:
        SessionParseError: If the text is not an object with a ``requests`` list
    """
    try:
        doc = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise SessionParseError(path, e.lineno, e.msg) from e
    if not isinstance(doc, dict):
        raise SessionParseError(path, None, "expected a JSON object")
    if not isinstance(doc.get("requests"), list):
        raise SessionParseError(path, None, "missing 'requests' array")
    return doc


def load_copilot_document(path: Path) -> dict[str, Any]:
    return parse_copilot_document(Path(path).read_text(encoding="utf-8"), str(path))


def serialize_copilot_document(doc: dict[str, Any]) -> str:
    """Pretty-printed JSON, the way VS Code stores chat sessions."""
    return orjson.dumps(doc, option=orjson.OPT_INDENT_2).decode("utf-8")


# ═══════════════════════════════════════════════════════════════════════════════
# FILES
# ═══════════════════════════════════════════════════════════════════════════════


def write_atomic(path: Path, data: str) -> None:
    """Write text atomically using temp file + rename.

    Readers never observe a half-written file, and a failure leaves no file
    at ``path``.
    """
    path = Path(path)
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_text(data, encoding="utf-8")
        os.replace(tmp_path, path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise
