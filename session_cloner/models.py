"""Data model for Session Cloner.

Session entries stay as the parsed JSON dicts so that fields this package
does not know about survive a clone untouched. Content blocks get a typed
view (a small tagged union) for classification, and the pipeline's own
state (turns, bands, tasks, stats) is plain dataclasses.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Union

SessionEntry = dict[str, Any]


class ToolHandlingMode(str, Enum):
    """How in-zone tool calls are handled."""

    REMOVE = "remove"
    TRUNCATE = "truncate"


class CompressionLevel(str, Enum):
    """Compression intensity of a band."""

    COMPRESS = "compress"
    HEAVY_COMPRESS = "heavy-compress"


class TaskStatus(str, Enum):
    """Compression task state machine states.

    pending -> success | failed | skipped, never backwards.
    """

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


# ═══════════════════════════════════════════════════════════════════════════════
# CONTENT BLOCKS
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TextBlock:
    raw: dict
    text: str


@dataclass(frozen=True)
class ToolUseBlock:
    raw: dict
    id: str | None
    name: str
    input: Any


@dataclass(frozen=True)
class ToolResultBlock:
    raw: dict
    tool_use_id: str | None
    content: Any


@dataclass(frozen=True)
class ThinkingBlock:
    raw: dict
    thinking: str


@dataclass(frozen=True)
class UnknownBlock:
    """Any block kind not modelled above (images, future additions)."""

    raw: Any
    kind: str | None


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock, UnknownBlock]


def parse_block(raw: Any) -> ContentBlock:
    """Build the typed view of a raw content block.

    Never raises: anything unrecognised becomes an UnknownBlock.
    """
    if not isinstance(raw, dict):
        return UnknownBlock(raw=raw, kind=None)

    kind = raw.get("type")
    if kind == "text":
        text = raw.get("text")
        return TextBlock(raw=raw, text=text if isinstance(text, str) else "")
    if kind == "tool_use":
        return ToolUseBlock(
            raw=raw,
            id=raw.get("id"),
            name=raw.get("name") or "tool",
            input=raw.get("input"),
        )
    if kind == "tool_result":
        return ToolResultBlock(raw=raw, tool_use_id=raw.get("tool_use_id"), content=raw.get("content"))
    if kind == "thinking":
        thinking = raw.get("thinking")
        return ThinkingBlock(raw=raw, thinking=thinking if isinstance(thinking, str) else "")
    return UnknownBlock(raw=raw, kind=kind if isinstance(kind, str) else None)


# ═══════════════════════════════════════════════════════════════════════════════
# ENTRY HELPERS
# ═══════════════════════════════════════════════════════════════════════════════


def get_content(entry: SessionEntry) -> Any:
    """Return ``message.content`` or None when the entry has no message."""
    message = entry.get("message")
    if not isinstance(message, dict):
        return None
    return message.get("content")


def with_content(entry: SessionEntry, content: Any) -> SessionEntry:
    """Return a shallow copy of ``entry`` with ``message.content`` replaced."""
    return {**entry, "message": {**entry.get("message", {}), "content": content}}


def extract_text_content(entry: SessionEntry) -> str:
    """Text of an entry: string content, or its text blocks joined by newlines."""
    content = get_content(entry)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            block["text"]
            for block in content
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        )
    return ""


# ═══════════════════════════════════════════════════════════════════════════════
# PIPELINE TYPES
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Turn:
    """Inclusive index range ``[start, end]`` over an entry sequence."""

    start: int
    end: int

    def indices(self) -> range:
        return range(self.start, self.end + 1)

    def __len__(self) -> int:
        return self.end - self.start + 1


@dataclass
class RemovalOptions:
    """Removal policy.

    Attributes:
        tool_removal: Percent of earliest turns whose tool calls are handled (0-100)
        tool_handling_mode: remove or truncate in-zone tool calls
        thinking_removal: Percent of earliest turns whose thinking blocks are removed (0-100)
    """

    tool_removal: int = 0
    tool_handling_mode: ToolHandlingMode = ToolHandlingMode.REMOVE
    thinking_removal: int = 0

    def __post_init__(self):
        if isinstance(self.tool_handling_mode, str):
            self.tool_handling_mode = ToolHandlingMode(self.tool_handling_mode)


@dataclass(frozen=True)
class CompressionBand:
    """Percentage range over turn positions carrying a compression level."""

    start: float
    end: float
    level: CompressionLevel

    def __post_init__(self):
        if isinstance(self.level, str):
            object.__setattr__(self, "level", CompressionLevel(self.level))


@dataclass
class CompressionTask:
    """One text span scheduled for rewrite by a compression provider.

    Attributes:
        message_index: Position of the owning entry (or request slot) in the sequence
        entry_type: "user" or "assistant"
        original_content: Text sent to the provider
        level: Compression level of the owning band
        estimated_tokens: Token estimate of original_content
        attempt: Attempts made so far
        timeout: Timeout in seconds for the next attempt
        status: Task state
        result: Compressed text on success
        error: Last error message
        duration_ms: Wall time of the successful or final attempt
    """

    message_index: int
    entry_type: str
    original_content: str
    level: CompressionLevel
    estimated_tokens: int
    attempt: int = 0
    timeout: float = 0.0
    status: TaskStatus = TaskStatus.PENDING
    result: str | None = None
    error: str | None = None
    duration_ms: int | None = None

    def _transition(self, status: TaskStatus) -> None:
        if self.status is not TaskStatus.PENDING:
            raise RuntimeError(
                f"Task {self.message_index} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def mark_success(self, result: str, duration_ms: int | None = None) -> None:
        self._transition(TaskStatus.SUCCESS)
        self.result = result
        self.error = None
        self.duration_ms = duration_ms

    def mark_failed(self, error: str, duration_ms: int | None = None) -> None:
        self._transition(TaskStatus.FAILED)
        self.error = error
        self.duration_ms = duration_ms

    def mark_skipped(self) -> None:
        self._transition(TaskStatus.SKIPPED)


@dataclass
class CompressionStats:
    """Aggregate outcome of a compression run."""

    messages_compressed: int = 0
    messages_skipped: int = 0
    messages_failed: int = 0
    original_tokens: int = 0
    compressed_tokens: int = 0
    tokens_removed: int = 0
    reduction_percent: int = 0
    total_duration_ms: int | None = None
    avg_duration_ms: int | None = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class CloneStats:
    """Statistics reported for a finished clone."""

    original_turn_count: int
    output_turn_count: int
    tool_calls_removed: int = 0
    tool_calls_truncated: int = 0
    thinking_blocks_removed: int = 0
    compression: CompressionStats | None = None

    def to_dict(self) -> dict:
        d = {
            "original_turn_count": self.original_turn_count,
            "output_turn_count": self.output_turn_count,
            "tool_calls_removed": self.tool_calls_removed,
            "thinking_blocks_removed": self.thinking_blocks_removed,
        }
        if self.tool_calls_truncated > 0:
            d["tool_calls_truncated"] = self.tool_calls_truncated
        if self.compression is not None:
            d["compression"] = self.compression.to_dict()
        return d


@dataclass
class CloneResult:
    """Outcome of a clone operation.

    ``stats`` is a CloneStats for Claude sessions and a CopilotCloneStats
    for Copilot sessions; both provide to_dict().
    """

    session_id: str
    output_path: str
    stats: Any
    source_path: str = ""
    debug_log_path: str | None = None
    tasks: list[CompressionTask] = field(default_factory=list, repr=False)
