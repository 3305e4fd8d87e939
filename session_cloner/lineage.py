"""Clone lineage log.

Every clone appends a block to ``<claude_dir>/clone-lineage.log`` so a clone
can always be traced back to the session it came from.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from session_cloner.log_config import get_logger
from session_cloner.models import CompressionBand, CompressionStats

log = get_logger("lineage")


@dataclass
class LineageEntry:
    target_id: str
    target_path: str
    source_id: str
    source_path: str
    tool_removal: int = 0
    thinking_removal: int = 0
    tool_handling_mode: str = "remove"
    compression_bands: list[CompressionBand] = field(default_factory=list)
    compression_stats: CompressionStats | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def format_lineage_entry(entry: LineageEntry) -> str:
    lines = [
        f"[{entry.timestamp}]",
        f"  TARGET: {entry.target_id}",
        f"    path: {entry.target_path}",
        f"  SOURCE: {entry.source_id}",
        f"    path: {entry.source_path}",
        f"  OPTIONS: toolRemoval={entry.tool_removal}% "
        f"toolHandlingMode={entry.tool_handling_mode} "
        f"thinkingRemoval={entry.thinking_removal}%",
    ]
    if entry.compression_bands:
        bands = ", ".join(f"{b.start:g}-{b.end:g}%:{b.level.value}" for b in entry.compression_bands)
        lines.append(f"  COMPRESSION: {bands}")
    if entry.compression_stats is not None:
        s = entry.compression_stats
        lines.append(
            f"    result: {s.messages_compressed} compressed, {s.messages_skipped} skipped, "
            f"{s.messages_failed} failed, {s.original_tokens} -> {s.compressed_tokens} tokens "
            f"({s.reduction_percent}% reduction)"
        )
    lines.append("---")
    return "\n".join(lines) + "\n"


def log_lineage(path: Path, entry: LineageEntry) -> None:
    """Append one lineage block to ``path``."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(format_lineage_entry(entry))
    log.debug(f"Lineage recorded: {entry.source_id} -> {entry.target_id}")
