"""Compression band validation and turn mapping."""

import math
from collections.abc import Sequence

from session_cloner.errors import ValidationError
from session_cloner.models import CompressionBand


def validate_bands(bands: Sequence[CompressionBand]) -> list[CompressionBand]:
    """Check bands and return them sorted by start.

    Raises:
        ValidationError: If a band is out of 0..100, has start >= end, or
            overlaps its neighbour once sorted
    """
    for band in bands:
        if not (0 <= band.start <= 100 and 0 <= band.end <= 100):
            raise ValidationError(
                f"Band {band.start}-{band.end} must lie within 0-100"
            )
        if band.start >= band.end:
            raise ValidationError(
                f"Band start ({band.start}) must be less than end ({band.end})"
            )

    ordered = sorted(bands, key=lambda b: b.start)
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.start < prev.end:
            raise ValidationError(
                f"Bands overlap: {prev.start}-{prev.end} and {cur.start}-{cur.end}"
            )
    return ordered


def band_turn_range(band: CompressionBand, turn_count: int) -> range:
    """Turn indices covered by a band: those whose position i*100/n is in [start, end)."""
    first = math.ceil(band.start * turn_count / 100)
    last = math.ceil(band.end * turn_count / 100)
    return range(first, min(last, turn_count))


def map_turns_to_bands(
    turn_count: int, bands: Sequence[CompressionBand]
) -> list[CompressionBand | None]:
    """Assign each turn index its band, or None.

    Bands are validated first; an invalid set raises before anything is
    assigned.

    Args:
        turn_count: Number of turns
        bands: Compression bands

    Returns:
        List of length turn_count
    """
    ordered = validate_bands(bands)
    mapping: list[CompressionBand | None] = [None] * turn_count
    for band in ordered:
        for turn_index in band_turn_range(band, turn_count):
            mapping[turn_index] = band
    return mapping
