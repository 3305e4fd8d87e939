"""Content classification and per-turn token accounting.

Blocks classify as text, tool or thinking. For accounting, text is further
bucketed by the role of the owning entry (user or assistant); tool and
thinking buckets ignore the role.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from session_cloner.models import (
    ContentBlock,
    SessionEntry,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
    get_content,
    parse_block,
)
from session_cloner.token_estimator import block_text, compact_json, estimate_tokens

BlockKind = Literal["text", "tool", "thinking"]
Bucket = Literal["user", "assistant", "thinking", "tool"]

# Entries that carry no conversational content
NON_MESSAGE_TYPES = ("summary", "file-history-snapshot")


def _as_block(block: Any) -> ContentBlock:
    if isinstance(block, dict) or not hasattr(block, "raw"):
        return parse_block(block)
    return block


def classify_block(block: Any) -> BlockKind:
    """Classify a raw or typed content block.

    tool_use and tool_result are both "tool"; unknown kinds count as "text".
    """
    typed = _as_block(block)
    if isinstance(typed, ThinkingBlock):
        return "thinking"
    if isinstance(typed, (ToolUseBlock, ToolResultBlock)):
        return "tool"
    return "text"


def bucket_for(kind: BlockKind, role: str | None) -> Bucket:
    """Map a block kind to its accounting bucket under an owning role."""
    if kind == "thinking":
        return "thinking"
    if kind == "tool":
        return "tool"
    return "assistant" if role == "assistant" else "user"


def token_bucket(block: Any, role: str | None) -> Bucket:
    """Accounting bucket of a block owned by an entry with the given role."""
    return bucket_for(classify_block(block), role)


@dataclass
class ContentSpan:
    """Run of consecutive blocks sharing one classification."""

    kind: BlockKind
    bucket: Bucket
    text: str
    tokens: int
    block_count: int = 1


def extract_spans(entry: SessionEntry) -> list[ContentSpan]:
    """Split an entry's content into spans, merging same-kind neighbours.

    Args:
        entry: Session entry

    Returns:
        Spans in content order (empty if the entry has no content)
    """
    role = entry.get("type")
    content = get_content(entry)

    if isinstance(content, str):
        if not content:
            return []
        bucket = bucket_for("text", role)
        return [ContentSpan("text", bucket, content, estimate_tokens(content))]

    if not isinstance(content, list):
        return []

    spans: list[ContentSpan] = []
    for raw in content:
        kind = classify_block(raw)
        text = block_text(raw)
        tokens = estimate_tokens(text)
        if spans and spans[-1].kind == kind:
            last = spans[-1]
            last.text = f"{last.text}\n{text}" if last.text and text else last.text or text
            last.tokens += tokens
            last.block_count += 1
        else:
            spans.append(ContentSpan(kind, bucket_for(kind, role), text, tokens))
    return spans


@dataclass
class TokensByType:
    """Token totals per accounting bucket."""

    user: int = 0
    assistant: int = 0
    thinking: int = 0
    tool: int = 0

    @property
    def total(self) -> int:
        return self.user + self.assistant + self.thinking + self.tool

    def add(self, bucket: Bucket, tokens: int) -> None:
        setattr(self, bucket, getattr(self, bucket) + tokens)

    def to_dict(self) -> dict:
        return {
            "user": self.user,
            "assistant": self.assistant,
            "thinking": self.thinking,
            "tool": self.tool,
            "total": self.total,
        }


def _counts_toward_tokens(entry: SessionEntry | None) -> bool:
    if not entry or entry.get("isMeta"):
        return False
    if entry.get("type") in NON_MESSAGE_TYPES:
        return False
    return isinstance(entry.get("message"), dict)


def calculate_cumulative_tokens(
    entries: list[SessionEntry],
    turns: list[Turn],
    up_to_turn: int,
) -> TokensByType:
    """Sum tokens per bucket over turns 0..up_to_turn (inclusive).

    Args:
        entries: Session entries
        turns: Turns from identify_turns(entries)
        up_to_turn: Last turn index to include

    Returns:
        TokensByType totals
    """
    result = TokensByType()
    last = min(up_to_turn, len(turns) - 1)

    for turn in turns[: last + 1]:
        for idx in turn.indices():
            entry = entries[idx]
            if not _counts_toward_tokens(entry):
                continue
            for span in extract_spans(entry):
                result.add(span.bucket, span.tokens)

    return result


@dataclass
class TurnContent:
    """Readable digest of one turn."""

    user_prompt: str = ""
    assistant_response: str = ""
    tool_blocks: list[tuple[str, str]] = field(default_factory=list)


def extract_turn_content(entries: list[SessionEntry], turn: Turn) -> TurnContent:
    """Collect the prompt, tool calls and assistant text of a turn."""
    digest = TurnContent()

    for idx in turn.indices():
        entry = entries[idx]
        if not entry or entry.get("isMeta") or not isinstance(entry.get("message"), dict):
            continue
        content = get_content(entry)

        if entry.get("type") == "user":
            if digest.user_prompt:
                continue
            if isinstance(content, str):
                digest.user_prompt = content
            elif isinstance(content, list):
                texts = [
                    b["text"] for b in content
                    if isinstance(b, dict) and b.get("type") == "text" and isinstance(b.get("text"), str)
                ]
                digest.user_prompt = "\n".join(texts)

        elif entry.get("type") == "assistant":
            if isinstance(content, str):
                digest.assistant_response = content
                continue
            if not isinstance(content, list):
                continue
            for raw in content:
                block = parse_block(raw)
                if isinstance(block, ToolUseBlock):
                    digest.tool_blocks.append((block.name, compact_json(block.input or {})))
                elif isinstance(block, TextBlock):
                    text = block.text
                    digest.assistant_response = (
                        f"{digest.assistant_response}\n{text}" if digest.assistant_response else text
                    )

    return digest
