"""Removal engine.

Applies boundary-based policies to the earliest turns of a session:

- Tool calls in the tool zone are removed (together with every tool_result
  that answers them, wherever it sits) or truncated in place.
- Thinking blocks in the thinking zone are always removed.

An entry whose content list ends up empty is dropped. Entries that are not
touched are passed through as the same dict objects, so they serialize
exactly as they were read.
"""

from dataclasses import dataclass
from typing import Any

from session_cloner.errors import ValidationError
from session_cloner.log_config import get_logger
from session_cloner.models import (
    RemovalOptions,
    SessionEntry,
    ToolHandlingMode,
    get_content,
    with_content,
)
from session_cloner.turns import identify_turns, removal_boundary

log = get_logger("removal")

TRUNCATE_MAX_LINES = 2
TRUNCATE_MAX_CHARS = 120
ELLIPSIS = "..."


@dataclass
class RemovalResult:
    """Output of apply_removals."""

    entries: list[SessionEntry]
    tool_calls_removed: int = 0
    tool_calls_truncated: int = 0
    thinking_blocks_removed: int = 0


def truncate_tool_content(value: str) -> str:
    """Cut a string to at most 2 lines or 120 characters.

    When either limit is hit, trailing whitespace is trimmed and "..." is
    appended. Strings within both limits come back unchanged.
    """
    if not isinstance(value, str):
        return value

    truncated = value
    lines = value.split("\n")
    if len(lines) > TRUNCATE_MAX_LINES:
        truncated = "\n".join(lines[:TRUNCATE_MAX_LINES])
    if len(truncated) > TRUNCATE_MAX_CHARS:
        truncated = truncated[:TRUNCATE_MAX_CHARS]

    if truncated == value:
        return value
    return truncated.rstrip() + ELLIPSIS


def truncate_value(value: Any) -> tuple[Any, bool]:
    """Truncate every string leaf of a JSON value.

    Returns:
        (new_value, changed). Containers are copied only when a leaf changed.
    """
    if isinstance(value, str):
        result = truncate_tool_content(value)
        return result, result != value

    if isinstance(value, dict):
        changed = False
        out = {}
        for key, item in value.items():
            new_item, item_changed = truncate_value(item)
            out[key] = new_item
            changed = changed or item_changed
        return (out, True) if changed else (value, False)

    if isinstance(value, list):
        changed = False
        out_list = []
        for item in value:
            new_item, item_changed = truncate_value(item)
            out_list.append(new_item)
            changed = changed or item_changed
        return (out_list, True) if changed else (value, False)

    return value, False


def validate_removal_options(options: RemovalOptions) -> None:
    """Raise ValidationError unless both percentages lie in 0..100."""
    for name, value in (
        ("tool_removal", options.tool_removal),
        ("thinking_removal", options.thinking_removal),
    ):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{name} must be a number, got {value!r}")
        if value < 0 or value > 100:
            raise ValidationError(f"{name} must be between 0 and 100, got {value}")


def _turn_index_map(entries: list[SessionEntry]) -> tuple[list[int | None], int]:
    """Map each entry position to its turn index (None before the first turn)."""
    turns = identify_turns(entries)
    owner: list[int | None] = [None] * len(entries)
    for turn_index, turn in enumerate(turns):
        for idx in turn.indices():
            owner[idx] = turn_index
    return owner, len(turns)


def _in_zone(turn_index: int | None, boundary: int) -> bool:
    return turn_index is not None and turn_index < boundary


def apply_removals(entries: list[SessionEntry], options: RemovalOptions) -> RemovalResult:
    """Apply tool and thinking policies to the earliest turns.

    Args:
        entries: Source entries (not mutated)
        options: Removal policy

    Returns:
        RemovalResult with the new entry list and exact counts

    Raises:
        ValidationError: If a percentage is outside 0..100
    """
    validate_removal_options(options)

    owner, turn_count = _turn_index_map(entries)
    tool_boundary = removal_boundary(turn_count, options.tool_removal)
    thinking_boundary = removal_boundary(turn_count, options.thinking_removal)
    remove_tools = options.tool_handling_mode is ToolHandlingMode.REMOVE

    log.debug(
        f"turns={turn_count} tool_boundary={tool_boundary} "
        f"thinking_boundary={thinking_boundary} mode={options.tool_handling_mode.value}"
    )

    # Pass 1: ids of tool calls that will be removed
    removed_ids: set[str] = set()
    if remove_tools and tool_boundary > 0:
        for idx, entry in enumerate(entries):
            if entry.get("type") != "assistant" or not _in_zone(owner[idx], tool_boundary):
                continue
            content = get_content(entry)
            if not isinstance(content, list):
                continue
            for block in content:
                if isinstance(block, dict) and block.get("type") == "tool_use" and block.get("id"):
                    removed_ids.add(block["id"])

    result = RemovalResult(entries=[])

    # Pass 2: rebuild entries
    for idx, entry in enumerate(entries):
        content = get_content(entry)
        if not isinstance(content, list):
            result.entries.append(entry)
            continue

        role = entry.get("type")
        tool_zone = _in_zone(owner[idx], tool_boundary)
        thinking_zone = _in_zone(owner[idx], thinking_boundary)

        new_content: list[Any] = []
        changed = False

        for block in content:
            kind = block.get("type") if isinstance(block, dict) else None

            if role == "assistant" and kind == "thinking" and thinking_zone:
                result.thinking_blocks_removed += 1
                changed = True
                continue

            if remove_tools:
                if role == "assistant" and kind == "tool_use" and tool_zone:
                    result.tool_calls_removed += 1
                    changed = True
                    continue
                if kind == "tool_result" and block.get("tool_use_id") in removed_ids:
                    changed = True
                    continue
            elif tool_zone:
                field_name = None
                if role == "assistant" and kind == "tool_use":
                    field_name = "input"
                elif role == "user" and kind == "tool_result":
                    field_name = "content"
                if field_name is not None and field_name in block:
                    truncated, block_changed = truncate_value(block[field_name])
                    if block_changed:
                        result.tool_calls_truncated += 1
                        changed = True
                        block = {**block, field_name: truncated}

            new_content.append(block)

        if not new_content:
            log.debug(f"Dropping entry {idx} ({entry.get('uuid')}): no content left")
        elif changed:
            result.entries.append(with_content(entry, new_content))
        else:
            result.entries.append(entry)

    log.info(
        f"Removal: {len(entries)} -> {len(result.entries)} entries, "
        f"tool_calls_removed={result.tool_calls_removed}, "
        f"tool_calls_truncated={result.tool_calls_truncated}, "
        f"thinking_blocks_removed={result.thinking_blocks_removed}"
    )
    return result
