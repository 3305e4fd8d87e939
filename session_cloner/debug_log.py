"""Markdown report of a compression run.

Shows each task's text before and after, its status, and the entries that
fell outside every band. Written on request next to the clone, for tuning
bands and prompts.
"""

from pathlib import Path

from session_cloner.log_config import get_logger
from session_cloner.models import CompressionLevel, CompressionTask, SessionEntry, TaskStatus, extract_text_content
from session_cloner.providers.base import TARGET_PERCENT
from session_cloner.session_io import write_atomic
from session_cloner.token_estimator import estimate_tokens

log = get_logger("debug_log")

SESSION_FIELDS = ("sessionId", "cwd", "gitBranch", "version")


def _fence(text: str | None) -> str:
    text = text or ""
    ticks = "````" if "```" in text else "```"
    return f"{ticks}\n{text}\n{ticks}\n"


def _label(entry_type: str) -> str:
    return "UserMessage" if entry_type == "user" else "AssistantMessage"


def _session_fields(entry: SessionEntry) -> str:
    return "".join(f"- {name}: `{entry[name]}`\n" for name in SESSION_FIELDS if entry.get(name))


def render_compression_report(
    source_id: str,
    target_id: str,
    source_path: str,
    target_path: str,
    entries: list[SessionEntry],
    tasks: list[CompressionTask],
    task_owner_ids: dict[int, str] | None = None,
) -> str:
    """Render the report.

    Args:
        source_id: Source session id
        target_id: Clone session id
        source_path: Source file
        target_path: Clone file
        entries: Entries the task indices refer to (before compression)
        tasks: Every task of the run
        task_owner_ids: Optional label per message_index when ``entries`` is
            not indexed the same way (Copilot slots)
    """
    out = [
        "# Compression Debug Log\n\n",
        "## Cloning Session\n\n",
        f"**Source:** `{source_id}`\n",
        f"**Target:** `{target_id}`\n\n",
        f"**Source File:** `{source_path}`\n",
        f"**Target File:** `{target_path}`\n\n",
    ]

    first_user = next((e for e in entries if e.get("type") == "user"), None)
    if first_user and _session_fields(first_user):
        out.append("### Source Session Fields\n")
        out.append(_session_fields(first_user))
        out.append("\n")
    out.append("---\n\n")

    for number, task in enumerate(tasks, start=1):
        if task_owner_ids is not None:
            owner = task_owner_ids.get(task.message_index, "unknown")
        elif 0 <= task.message_index < len(entries):
            owner = entries[task.message_index].get("uuid") or "unknown"
        else:
            owner = "unknown"

        out.append(f"## Message {number} - {_label(task.entry_type)} `{owner}`\n\n")
        out.append("### Before Compression\n\n")
        out.append(f"**Content:**\n{_fence(task.original_content)}\n")
        out.append(f"- estimatedTokens: `{task.estimated_tokens}`\n\n")
        out.append("### After Compression\n\n")

        if task.status is TaskStatus.SUCCESS:
            compressed = estimate_tokens(task.result)
            reduction = (
                round((task.estimated_tokens - compressed) / task.estimated_tokens * 100)
                if task.estimated_tokens > 0
                else 0
            )
            target = TARGET_PERCENT[CompressionLevel(task.level)]
            out.append(f"**Status:** Compressed ({target}% target)\n\n")
            out.append(f"**Content:**\n{_fence(task.result)}\n")
            out.append("**Compression Stats:**\n")
            out.append(f"- Original: {task.estimated_tokens} tokens\n")
            out.append(f"- Compressed: {compressed} tokens\n")
            out.append(f"- Reduction: {reduction}%\n")
            if task.duration_ms is not None:
                out.append(f"- Duration: {task.duration_ms}ms\n")
            out.append("\n")
        elif task.status is TaskStatus.SKIPPED:
            out.append(f"**Status:** Not Compressed - Below Threshold ({task.estimated_tokens} tokens)\n\n")
        elif task.status is TaskStatus.FAILED:
            out.append(f"**Status:** Not Compressed - Failed After {task.attempt} Attempts\n\n")
            out.append(f"**Error:** `{task.error or 'Unknown error'}`\n")
            if task.duration_ms is not None:
                out.append(f"**Duration:** {task.duration_ms}ms\n")
            out.append("\n")
        out.append("---\n\n")

    if task_owner_ids is None:
        in_band = {t.message_index for t in tasks}
        outside = [
            (i, e)
            for i, e in enumerate(entries)
            if e.get("type") in ("user", "assistant") and i not in in_band
        ]
        if outside:
            out.append("## Messages Not in Compression Bands\n\n")
            for number, (index, entry) in enumerate(outside, start=1):
                tokens = estimate_tokens(extract_text_content(entry))
                out.append(
                    f"{number}. Message {index} - {_label(entry.get('type'))} "
                    f"`{entry.get('uuid') or 'unknown'}` ({tokens} tokens) - Band: none\n"
                )
            out.append("\n---\n\n")

    counts = {status: sum(1 for t in tasks if t.status is status) for status in TaskStatus}
    out.append("## Summary\n\n")
    out.append(f"Total messages in bands: {len(tasks)}\n")
    out.append(f"- Compressed successfully: {counts[TaskStatus.SUCCESS]}\n")
    out.append(f"- Skipped (below threshold): {counts[TaskStatus.SKIPPED]}\n")
    out.append(f"- Failed: {counts[TaskStatus.FAILED]}\n")

    durations = [t.duration_ms for t in tasks if t.duration_ms is not None]
    if durations:
        out.append("\n**Timing:**\n")
        out.append(f"- Total: {sum(durations) / 1000:.2f}s\n")
        out.append(f"- Average per call: {round(sum(durations) / len(durations))}ms\n")

    return "".join(out)


def write_compression_report(directory: Path, target_id: str, report: str) -> Path:
    """Write the report as ``<target_id>-compression-debug.md``."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{target_id}-compression-debug.md"
    write_atomic(path, report)
    log.info(f"Compression debug log written to: {path}")
    return path
