"""Compression batch orchestrator.

Older text spans are rewritten by an external provider. The flow is:

1. map turns to bands and create one task per user/assistant entry in a
   banded turn (spans under ``min_tokens`` are skipped up front)
2. drain the pending tasks through a pool of ``concurrency`` asyncio
   workers; each call gets its own timeout that grows per attempt
3. once every worker has settled, apply the successful results by
   ``message_index``

A task that runs out of attempts is marked failed and its entry keeps the
original text. Results are only applied after settlement, so the output
does not depend on completion order.
"""

import asyncio
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from session_cloner.bands import map_turns_to_bands
from session_cloner.config import CompressionConfig
from session_cloner.errors import OperationAbortedError
from session_cloner.log_config import get_logger, log_timing
from session_cloner.models import (
    CompressionBand,
    CompressionStats,
    CompressionTask,
    SessionEntry,
    TaskStatus,
    Turn,
    extract_text_content,
    get_content,
    with_content,
)
from session_cloner.providers.base import CompressionProvider
from session_cloner.token_estimator import estimate_tokens
from session_cloner.turns import identify_turns

log = get_logger("compression")

COMPRESSIBLE_TYPES = ("user", "assistant")


@dataclass
class CompressionOutcome:
    """Entries after compression plus the run's stats and tasks."""

    entries: list[SessionEntry]
    stats: CompressionStats
    tasks: list[CompressionTask] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════════
# TASK CREATION
# ═══════════════════════════════════════════════════════════════════════════════


def create_compression_tasks(
    entries: list[SessionEntry],
    turns: list[Turn],
    mapping: list[CompressionBand | None],
    config: CompressionConfig,
    include_user_messages: bool = True,
) -> list[CompressionTask]:
    """Create one task per user/assistant entry inside a banded turn.

    Args:
        entries: Session entries
        turns: Turns of ``entries``
        mapping: Band (or None) per turn index
        config: Orchestrator settings (min_tokens, first timeout)
        include_user_messages: When False only assistant entries get tasks

    Returns:
        Tasks in entry order; those under min_tokens are already skipped
    """
    kinds = COMPRESSIBLE_TYPES if include_user_messages else ("assistant",)
    tasks: list[CompressionTask] = []

    for turn_index, band in enumerate(mapping):
        if band is None:
            continue
        for entry_index in turns[turn_index].indices():
            entry = entries[entry_index]
            if entry.get("type") not in kinds:
                continue

            text = extract_text_content(entry)
            task = CompressionTask(
                message_index=entry_index,
                entry_type=entry["type"],
                original_content=text,
                level=band.level,
                estimated_tokens=estimate_tokens(text),
                timeout=config.timeout_for_attempt(1),
            )
            if task.estimated_tokens < config.min_tokens:
                task.mark_skipped()
            tasks.append(task)

    return tasks


# ═══════════════════════════════════════════════════════════════════════════════
# WORKER POOL
# ═══════════════════════════════════════════════════════════════════════════════


async def _run_task(
    task: CompressionTask,
    provider: CompressionProvider,
    config: CompressionConfig,
    abort_event: asyncio.Event | None,
) -> None:
    """Drive one task to success or failure, retrying with longer timeouts."""
    use_large_model = task.estimated_tokens > config.thinking_threshold
    last_error = "not attempted"
    elapsed_ms = 0

    for attempt in range(1, config.max_attempts + 1):
        if attempt > 1 and abort_event is not None and abort_event.is_set():
            last_error = "aborted"
            break

        task.attempt = attempt
        task.timeout = config.timeout_for_attempt(attempt)
        start = perf_counter()
        try:
            result = await asyncio.wait_for(
                provider.compress(task.original_content, task.level, use_large_model),
                timeout=task.timeout,
            )
        except asyncio.TimeoutError:
            last_error = f"Compression timeout after {task.timeout:g}s"
        except Exception as e:
            last_error = str(e) or type(e).__name__
        else:
            elapsed_ms = int((perf_counter() - start) * 1000)
            task.mark_success(result, elapsed_ms)
            log.debug(
                f"Task {task.message_index} compressed on attempt {attempt} "
                f"({task.estimated_tokens} -> {estimate_tokens(result)} tokens, {elapsed_ms}ms)"
            )
            return

        elapsed_ms = int((perf_counter() - start) * 1000)
        log.debug(f"Task {task.message_index} attempt {attempt}/{config.max_attempts} failed: {last_error}")

    log.warning(
        f"Task {task.message_index} failed after {task.attempt} attempt(s), keeping original: {last_error}"
    )
    task.mark_failed(last_error, elapsed_ms)


async def process_tasks(
    tasks: list[CompressionTask],
    provider: CompressionProvider,
    config: CompressionConfig,
    abort_event: asyncio.Event | None = None,
) -> list[CompressionTask]:
    """Run pending tasks through a bounded pool of workers.

    At most ``config.concurrency`` provider calls are in flight; a worker
    picks the next queued task as soon as its current one settles. Once
    ``abort_event`` is set no further task is admitted, but calls already in
    flight are left to finish.

    Args:
        tasks: Tasks to process; only pending ones are dispatched
        provider: Compression provider
        config: Orchestrator settings
        abort_event: Optional abort signal

    Returns:
        All tasks sorted by message_index
    """
    pending = [t for t in tasks if t.status is TaskStatus.PENDING]
    if not pending:
        return sorted(tasks, key=lambda t: t.message_index)

    work: asyncio.Queue[CompressionTask] = asyncio.Queue()
    for task in pending:
        work.put_nowait(task)
    settled: asyncio.Queue[CompressionTask] = asyncio.Queue()

    async def worker() -> None:
        while abort_event is None or not abort_event.is_set():
            try:
                task = work.get_nowait()
            except asyncio.QueueEmpty:
                return
            await _run_task(task, provider, config, abort_event)
            settled.put_nowait(task)

    worker_count = min(config.concurrency, len(pending))
    log.info(f"Compressing {len(pending)} span(s) with {worker_count} worker(s)")

    with log_timing("compression batch", log, level="info"):
        await asyncio.gather(*(worker() for _ in range(worker_count)))

    done = settled.qsize()
    if done < len(pending):
        log.warning(f"Aborted: {len(pending) - done} task(s) never dispatched")

    return sorted(tasks, key=lambda t: t.message_index)


# ═══════════════════════════════════════════════════════════════════════════════
# RESULT APPLICATION
# ═══════════════════════════════════════════════════════════════════════════════


def apply_compressed_content(entry: SessionEntry, compressed_text: str) -> SessionEntry:
    """Return a copy of ``entry`` with its text replaced by ``compressed_text``.

    String content is replaced outright. For block lists every text block is
    dropped and one new text block is inserted where the first one was; all
    other blocks keep their relative order.
    """
    content = get_content(entry)

    if isinstance(content, str):
        return with_content(entry, compressed_text)

    if isinstance(content, list):
        first_text = next(
            (i for i, b in enumerate(content) if isinstance(b, dict) and b.get("type") == "text"),
            0,
        )
        others = [b for b in content if not (isinstance(b, dict) and b.get("type") == "text")]
        insert_at = min(first_text, len(others))
        new_content: list[Any] = [*others[:insert_at], {"type": "text", "text": compressed_text}, *others[insert_at:]]
        return with_content(entry, new_content)

    return entry


def apply_compression_results(
    entries: list[SessionEntry], tasks: list[CompressionTask]
) -> list[SessionEntry]:
    """Apply successful results at their message_index; other entries pass through."""
    results = {
        t.message_index: t.result
        for t in tasks
        if t.status is TaskStatus.SUCCESS and t.result is not None
    }
    return [
        apply_compressed_content(entry, results[i]) if i in results else entry
        for i, entry in enumerate(entries)
    ]


def calculate_stats(tasks: list[CompressionTask]) -> CompressionStats:
    """Aggregate task outcomes.

    Token totals cover dispatched tasks only. A failed task keeps its
    original text, so it counts the same on both sides.
    """
    stats = CompressionStats()
    durations: list[int] = []

    for task in tasks:
        if task.status is TaskStatus.SKIPPED:
            stats.messages_skipped += 1
            continue
        if task.status is TaskStatus.SUCCESS:
            stats.messages_compressed += 1
            stats.original_tokens += task.estimated_tokens
            stats.compressed_tokens += estimate_tokens(task.result)
        elif task.status is TaskStatus.FAILED:
            stats.messages_failed += 1
            stats.original_tokens += task.estimated_tokens
            stats.compressed_tokens += task.estimated_tokens
        if task.duration_ms is not None:
            durations.append(task.duration_ms)

    stats.tokens_removed = stats.original_tokens - stats.compressed_tokens
    if stats.original_tokens > 0:
        stats.reduction_percent = round(stats.tokens_removed / stats.original_tokens * 100)
    if durations:
        stats.total_duration_ms = sum(durations)
        stats.avg_duration_ms = round(stats.total_duration_ms / len(durations))
    return stats


async def run_compression(
    tasks: list[CompressionTask],
    provider: CompressionProvider,
    config: CompressionConfig,
    abort_event: asyncio.Event | None = None,
) -> list[CompressionTask]:
    """Process tasks and fail the whole operation if it was aborted meanwhile."""
    settled = await process_tasks(tasks, provider, config, abort_event)
    if abort_event is not None and abort_event.is_set():
        raise OperationAbortedError("Compression aborted; no results were applied")
    return settled


async def compress_messages(
    entries: list[SessionEntry],
    bands: list[CompressionBand],
    provider: CompressionProvider,
    config: CompressionConfig,
    abort_event: asyncio.Event | None = None,
    include_user_messages: bool = True,
) -> CompressionOutcome:
    """Compress the banded turns of a session.

    Args:
        entries: Entries after removal and chain repair
        bands: Compression bands (validated here before anything runs)
        provider: Compression provider
        config: Orchestrator settings
        abort_event: Optional abort signal
        include_user_messages: Compress user text as well as assistant text

    Returns:
        CompressionOutcome; ``entries`` is the input list itself when no
        band applies

    Raises:
        ValidationError: If the bands are invalid
        OperationAbortedError: If aborted before results were applied
    """
    turns = identify_turns(entries)
    mapping = map_turns_to_bands(len(turns), bands)

    if not bands:
        return CompressionOutcome(entries=entries, stats=CompressionStats())

    tasks = create_compression_tasks(entries, turns, mapping, config, include_user_messages)
    skipped = sum(1 for t in tasks if t.status is TaskStatus.SKIPPED)
    log.info(f"Created {len(tasks)} compression task(s), {skipped} below {config.min_tokens} tokens")

    settled = await run_compression(tasks, provider, config, abort_event)
    compressed = apply_compression_results(entries, settled)
    stats = calculate_stats(settled)

    log.info(
        f"Compression: {stats.messages_compressed} compressed, {stats.messages_failed} failed, "
        f"{stats.messages_skipped} skipped, {stats.original_tokens} -> {stats.compressed_tokens} tokens "
        f"({stats.reduction_percent}% reduction)"
    )
    return CompressionOutcome(entries=compressed, stats=stats, tasks=settled)
