"""Word-count token estimation.

tokens = ceil(words * 0.75). Deterministic and independent of any tokenizer,
so the same text always reports the same size in stats, thresholds and logs.
"""

import math
from typing import Any

import orjson


def compact_json(data: Any) -> str:
    """Serialize to compact JSON (no whitespace between tokens)."""
    return orjson.dumps(data).decode("utf-8")


def estimate_tokens(text: Any) -> int:
    """Estimate tokens for a piece of text.

    Args:
        text: Text to measure; non-string input counts as 0

    Returns:
        ceil(word_count * 0.75)
    """
    if not text or not isinstance(text, str):
        return 0
    words = len(text.split())
    return math.ceil(words * 0.75)


def block_text(block: Any) -> str:
    """Text used to size a content block.

    - text: the text
    - tool_use: compact JSON of input
    - tool_result: content if a string, else its compact JSON
    - thinking: the thinking text
    - anything else: empty
    """
    if not isinstance(block, dict):
        return ""

    kind = block.get("type")
    if kind == "text":
        text = block.get("text")
        return text if isinstance(text, str) else ""
    if kind == "tool_use":
        return compact_json(block.get("input") or {})
    if kind == "tool_result":
        content = block.get("content")
        if isinstance(content, str):
            return content
        return compact_json(content or {})
    if kind == "thinking":
        thinking = block.get("thinking")
        return thinking if isinstance(thinking, str) else ""
    return ""


def estimate_content_tokens(content: Any) -> int:
    """Estimate tokens for message content (string or list of blocks)."""
    if not content:
        return 0
    if isinstance(content, str):
        return estimate_tokens(content)
    if not isinstance(content, list):
        return 0
    return sum(estimate_tokens(block_text(block)) for block in content)
