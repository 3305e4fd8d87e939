"""Request/response models for clone operations.

Incoming options are validated here, in one place, before any stage runs.
pydantic errors are re-raised as ValidationError so callers only deal with
this package's exceptions.
"""

import uuid
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from session_cloner.errors import ValidationError
from session_cloner.models import (
    CloneResult,
    CompressionBand,
    CompressionLevel,
    RemovalOptions,
    ToolHandlingMode,
)


class BandSpec(BaseModel):
    """One compression band."""

    start: float = Field(..., ge=0, le=100, description="Band start, percent of turns")
    end: float = Field(..., ge=0, le=100, description="Band end (exclusive), percent of turns")
    level: CompressionLevel = Field(..., description="compress or heavy-compress")

    @model_validator(mode="after")
    def _start_before_end(self) -> "BandSpec":
        if self.start >= self.end:
            raise ValueError("start must be less than end")
        return self

    def to_band(self) -> CompressionBand:
        return CompressionBand(self.start, self.end, self.level)


class CloneRequest(BaseModel):
    """Options for cloning one session."""

    session_id: str = Field(..., description="UUID of the source session")
    source: Literal["claude", "copilot"] = Field(default="claude", description="Session source")
    tool_removal: int = Field(default=0, ge=0, le=100, description="Percent of earliest turns losing tool calls")
    tool_handling_mode: ToolHandlingMode = Field(
        default=ToolHandlingMode.REMOVE, description="remove or truncate in-zone tool calls"
    )
    thinking_removal: int = Field(default=0, ge=0, le=100, description="Percent of earliest turns losing thinking")
    compression_bands: list[BandSpec] | None = Field(default=None, description="Compression bands")
    include_user_messages: bool = Field(default=True, description="Compress user text too")
    drop_percent: int = Field(default=0, ge=0, le=100, description="Copilot only: drop earliest turns")
    debug_log: bool = Field(default=False, description="Write a compression debug report")

    @field_validator("session_id")
    @classmethod
    def _check_uuid(cls, value: str) -> str:
        try:
            uuid.UUID(value)
        except ValueError:
            raise ValueError("session_id must be a UUID") from None
        return value

    @model_validator(mode="after")
    def _bands_do_not_overlap(self) -> "CloneRequest":
        bands = sorted(self.compression_bands or [], key=lambda b: b.start)
        for prev, cur in zip(bands, bands[1:]):
            if cur.start < prev.end:
                raise ValueError("Compression bands must not overlap")
        return self

    def removal_options(self) -> RemovalOptions:
        return RemovalOptions(self.tool_removal, self.tool_handling_mode, self.thinking_removal)

    def bands(self) -> list[CompressionBand]:
        return [b.to_band() for b in self.compression_bands or []]


class CloneResponse(BaseModel):
    """Outcome of a clone, as reported to callers."""

    success: bool = True
    session_id: str
    output_path: str
    source_path: str = ""
    debug_log_path: str | None = None
    stats: dict[str, Any]

    @classmethod
    def from_result(cls, result: CloneResult) -> "CloneResponse":
        return cls(
            session_id=result.session_id,
            output_path=result.output_path,
            source_path=result.source_path,
            debug_log_path=result.debug_log_path,
            stats=result.stats.to_dict(),
        )


def parse_clone_request(data: dict[str, Any]) -> CloneRequest:
    """Validate raw options.

    Raises:
        ValidationError: Describing the first invalid field
    """
    try:
        return CloneRequest.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first.get("loc", ())) or "request"
        raise ValidationError(f"{location}: {first['msg']}") from e
