"""Shared pieces of the compression providers.

Every provider sends the same TextCompressor prompt and expects the model to
answer with one JSON object ``{"text": "..."}``. Models wrap that object in
code fences or a preamble often enough that parsing goes through json_repair
before validation.
"""

import re
from typing import Protocol, runtime_checkable

from json_repair import loads as json_repair_loads
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from session_cloner.errors import ProviderError
from session_cloner.models import CompressionLevel

# Target size as a percent of the input, per level
TARGET_PERCENT = {
    CompressionLevel.COMPRESS: 35,
    CompressionLevel.HEAVY_COMPRESS: 10,
}

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")
_TEXT_OBJECT_RE = re.compile(r"\{[\s\S]*\"text\"[\s\S]*\}")


@runtime_checkable
class CompressionProvider(Protocol):
    """Anything that can rewrite text to a shorter form."""

    async def compress(self, text: str, level: CompressionLevel, use_large_model: bool) -> str:
        """Return a compressed rewrite of ``text``.

        Raises:
            ProviderError: If the call fails or the answer cannot be parsed
        """
        ...


class CompressionResponse(BaseModel):
    """Expected model answer."""

    text: str = Field(..., min_length=1, description="Compressed text")


def configured_targets(config) -> dict[CompressionLevel, int]:
    """Target percents from ``config.compression``, keyed by level."""
    return {
        CompressionLevel.COMPRESS: config.compression.target_standard,
        CompressionLevel.HEAVY_COMPRESS: config.compression.target_heavy,
    }


def build_prompt(text: str, level: CompressionLevel | str, target_percent: int | None = None) -> str:
    """Build the TextCompressor prompt for a span.

    Args:
        text: Span to compress
        level: Compression level, selects the default target
        target_percent: Override for the target size percent
    """
    if target_percent is None:
        target_percent = TARGET_PERCENT[CompressionLevel(level)]

    return f"""You are TextCompressor. Rewrite the text below to approximately {target_percent}% of its original length while preserving intent and factual meaning.

Token estimation: tokens ≈ ceil(characters / 4)

Rules:
- Preserve key entities, claims, and relationships
- Remove redundancy, filler, and hedging
- Keep fluent English
- If unsure about length, err shorter
- Do not include explanations or commentary outside the JSON
- Do not reference "I", "we", "user", "assistant", or conversation roles

Return exactly one JSON object: {{"text": "your compressed text"}}

Input text:
<<<CONTENT
{text}
CONTENT"""


def extract_json_candidate(raw: str) -> str:
    """Pick the part of a model answer most likely to hold the JSON object.

    Order: fenced code block, then a bare object mentioning "text", then the
    whole answer.
    """
    fence = _CODE_FENCE_RE.search(raw)
    if fence:
        return fence.group(1).strip()
    obj = _TEXT_OBJECT_RE.search(raw)
    if obj:
        return obj.group(0)
    return raw.strip()


def parse_compression_response(raw: str) -> str:
    """Extract the compressed text from a model answer.

    Raises:
        ProviderError: If no non-empty ``text`` field can be recovered
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ProviderError("Empty response from model")

    parsed = json_repair_loads(extract_json_candidate(raw))
    if not isinstance(parsed, dict):
        raise ProviderError(f"Response is not a JSON object: {raw[:200]!r}")

    try:
        return CompressionResponse.model_validate(parsed).text
    except PydanticValidationError as e:
        raise ProviderError(f"Invalid compression response: {e.errors()[0]['msg']}") from e
