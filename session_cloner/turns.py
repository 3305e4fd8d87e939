"""Turn boundary detection.

A turn is one human-initiated exchange plus everything the assistant did
until the next one. Tool results arrive as user entries too, so they are
continuations, not new turns.
"""

import math

from session_cloner.models import SessionEntry, Turn, get_content


def is_new_turn(entry: SessionEntry) -> bool:
    """Check whether an entry opens a new turn.

    True for a non-meta user entry whose content is a plain string, or a
    block list holding a text block and no tool_result block.
    """
    if entry.get("type") != "user":
        return False
    if entry.get("isMeta") is True:
        return False

    content = get_content(entry)
    if isinstance(content, str):
        return True
    if isinstance(content, list):
        kinds = {block.get("type") for block in content if isinstance(block, dict)}
        return "text" in kinds and "tool_result" not in kinds
    return False


def identify_turns(entries: list[SessionEntry]) -> list[Turn]:
    """Split an entry sequence into turns.

    Entries before the first turn-opening entry belong to no turn; the last
    turn runs to the final entry.

    Args:
        entries: Session entries in file order

    Returns:
        Ordered, disjoint turns (empty for empty input)
    """
    turns: list[Turn] = []
    current_start: int | None = None

    for i, entry in enumerate(entries):
        if is_new_turn(entry):
            if current_start is not None:
                turns.append(Turn(current_start, i - 1))
            current_start = i

    if current_start is not None:
        turns.append(Turn(current_start, len(entries) - 1))

    return turns


def removal_boundary(turn_count: int, percent: float) -> int:
    """Turn index below which turns are in a removal zone.

    floor(turn_count * percent / 100), with 0% -> 0 and >=100% -> turn_count.
    """
    if percent <= 0:
        return 0
    if percent >= 100:
        return turn_count
    return math.floor(turn_count * percent / 100)
