"""Clone service.

Ties the stages together for one clone:

    load -> identify turns -> removal -> chain repair -> compression
         -> assembly -> atomic write -> lineage (-> debug report)

All validation happens before the source is read, and the output is only
written once every stage has succeeded, so a failed clone leaves the
filesystem as it was. Lineage and debug-report failures are logged and do
not fail the clone.
"""

import asyncio
from typing import Any

from session_cloner.assembler import assemble_copilot_session, assemble_session, new_session_id
from session_cloner.bands import validate_bands
from session_cloner.chain import repair_parent_uuid_chain
from session_cloner.compression import compress_messages
from session_cloner.config import Config
from session_cloner.copilot import CopilotCloneOptions, transform_copilot_requests
from session_cloner.debug_log import render_compression_report, write_compression_report
from session_cloner.errors import SessionNotFoundError
from session_cloner.lineage import LineageEntry, log_lineage
from session_cloner.log_config import get_logger, log_timing
from session_cloner.models import CloneResult, CloneStats, CompressionTask
from session_cloner.providers import CompressionProvider, get_provider, reset_provider
from session_cloner.removal import apply_removals
from session_cloner.schemas import CloneRequest, parse_clone_request
from session_cloner.session_io import (
    load_copilot_document,
    load_jsonl,
    serialize_copilot_document,
    serialize_jsonl,
    write_atomic,
)
from session_cloner.sources import SessionSource, get_session_source
from session_cloner.turns import identify_turns

log = get_logger("cloner")


class SessionCloner:
    """Produce smaller copies of stored sessions.

    Example:
        cloner = SessionCloner()
        result = await cloner.clone({"session_id": sid, "tool_removal": 100})
    """

    def __init__(self, config: Config | None = None, provider: CompressionProvider | None = None):
        self.config = config or Config()
        self._provider = provider
        self._owns_provider = False

    @property
    def provider(self) -> CompressionProvider:
        """Compression provider, created on first use."""
        if self._provider is None:
            self._provider = get_provider(self.config)
            self._owns_provider = True
        return self._provider

    async def close(self) -> None:
        """Close a provider this cloner created and drop it from the cache.

        Providers passed in by the caller are left open.
        """
        if not self._owns_provider:
            return
        close = getattr(self._provider, "close", None)
        if close is not None:
            await close()
        self._provider = None
        self._owns_provider = False
        reset_provider()

    def source(self, source_type: str) -> SessionSource:
        return get_session_source(source_type, self.config)

    def locate(self, source: SessionSource, session_id: str):
        """Return the path of a session.

        Raises:
            SessionNotFoundError: If no folder holds the session
        """
        folder = source.find_session(session_id)
        if folder is None:
            raise SessionNotFoundError(session_id)
        return source.session_path(folder, session_id)

    async def clone(
        self,
        request: CloneRequest | dict[str, Any],
        abort_event: asyncio.Event | None = None,
    ) -> CloneResult:
        """Clone one session.

        Args:
            request: CloneRequest or its raw dict form
            abort_event: Set to abort while compression is running

        Returns:
            CloneResult with the new id, output path and stats

        Raises:
            ValidationError: Invalid options (nothing read or written)
            SessionNotFoundError: Unknown session id
            SessionParseError: Malformed source record
            OperationAbortedError: Aborted during compression (nothing written)
        """
        if not isinstance(request, CloneRequest):
            request = parse_clone_request(request)
        validate_bands(request.bands())

        try:
            if request.source == "copilot":
                return await self._clone_copilot(request, abort_event)
            return await self._clone_claude(request, abort_event)
        finally:
            await self.close()

    # ═══════════════════════════════════════════════════════════════════════════
    # CLAUDE CODE
    # ═══════════════════════════════════════════════════════════════════════════

    async def _clone_claude(self, request: CloneRequest, abort_event: asyncio.Event | None) -> CloneResult:
        source_path = self.locate(self.source("claude"), request.session_id)
        log.info(f"Cloning {request.session_id} from {source_path}")

        entries = load_jsonl(source_path)
        original_turns = identify_turns(entries)

        with log_timing("removal + chain repair", log):
            removal = apply_removals(entries, request.removal_options())
            repaired = repair_parent_uuid_chain(removal.entries)

        bands = request.bands()
        compressed = repaired
        compression_stats = None
        tasks: list[CompressionTask] = []
        if bands:
            outcome = await compress_messages(
                repaired,
                bands,
                self.provider,
                self.config.compression,
                abort_event,
                request.include_user_messages,
            )
            compressed = outcome.entries
            compression_stats = outcome.stats
            tasks = outcome.tasks

        assembled = assemble_session(entries, compressed)
        output_path = source_path.parent / f"{assembled.session_id}.jsonl"
        write_atomic(output_path, serialize_jsonl(assembled.entries))

        stats = CloneStats(
            original_turn_count=len(original_turns),
            output_turn_count=len(identify_turns(assembled.body)),
            tool_calls_removed=removal.tool_calls_removed,
            tool_calls_truncated=removal.tool_calls_truncated,
            thinking_blocks_removed=removal.thinking_blocks_removed,
            compression=compression_stats,
        )
        log.info(f"Clone written: {output_path} ({stats.original_turn_count} -> {stats.output_turn_count} turns)")

        self._record_lineage(request, assembled.session_id, str(output_path), str(source_path), compression_stats)

        debug_log_path = None
        if request.debug_log and tasks:
            debug_log_path = self._write_report(
                request.session_id,
                assembled.session_id,
                str(source_path),
                str(output_path),
                repaired,
                tasks,
            )

        return CloneResult(
            session_id=assembled.session_id,
            output_path=str(output_path),
            stats=stats,
            source_path=str(source_path),
            debug_log_path=debug_log_path,
            tasks=tasks,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # COPILOT
    # ═══════════════════════════════════════════════════════════════════════════

    async def _clone_copilot(self, request: CloneRequest, abort_event: asyncio.Event | None) -> CloneResult:
        source_path = self.locate(self.source("copilot"), request.session_id)
        log.info(f"Cloning Copilot session {request.session_id} from {source_path}")

        doc = load_copilot_document(source_path)
        bands = request.bands()
        options = CopilotCloneOptions(
            tool_removal=request.tool_removal,
            drop_percent=request.drop_percent,
            bands=bands,
            include_user_messages=request.include_user_messages,
        )
        outcome = await transform_copilot_requests(
            doc,
            options,
            self.provider if bands else None,
            self.config.compression,
            abort_event,
        )

        session_id = new_session_id()
        clone = assemble_copilot_session(doc, outcome.requests, session_id)
        output_path = source_path.parent / f"{session_id}.json"
        write_atomic(output_path, serialize_copilot_document(clone))
        log.info(f"Copilot clone written: {output_path}")

        self._record_lineage(request, session_id, str(output_path), str(source_path), outcome.stats.compression)

        debug_log_path = None
        if request.debug_log and outcome.tasks:
            owners = {}
            for index, req in enumerate(outcome.requests):
                request_id = req.get("requestId") or f"request-{index}"
                owners[index * 2] = request_id
                owners[index * 2 + 1] = request_id
            debug_log_path = self._write_report(
                request.session_id,
                session_id,
                str(source_path),
                str(output_path),
                [],
                outcome.tasks,
                owners,
            )

        return CloneResult(
            session_id=session_id,
            output_path=str(output_path),
            stats=outcome.stats,
            source_path=str(source_path),
            debug_log_path=debug_log_path,
            tasks=outcome.tasks,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # SIDE RECORDS
    # ═══════════════════════════════════════════════════════════════════════════

    def _record_lineage(self, request: CloneRequest, target_id, target_path, source_path, compression_stats) -> None:
        entry = LineageEntry(
            target_id=target_id,
            target_path=target_path,
            source_id=request.session_id,
            source_path=source_path,
            tool_removal=request.tool_removal,
            thinking_removal=request.thinking_removal,
            tool_handling_mode=request.tool_handling_mode.value,
            compression_bands=request.bands(),
            compression_stats=compression_stats,
        )
        try:
            log_lineage(self.config.lineage_log_path, entry)
        except OSError as e:
            log.warning(f"Failed to record lineage for {target_id}: {e}")

    def _write_report(
        self,
        source_id: str,
        target_id: str,
        source_path: str,
        target_path: str,
        entries,
        tasks: list[CompressionTask],
        owners: dict[int, str] | None = None,
    ) -> str | None:
        try:
            report = render_compression_report(
                source_id, target_id, source_path, target_path, entries, tasks, owners
            )
            return str(write_compression_report(self.config.debug_log_dir, target_id, report))
        except OSError as e:
            log.error(f"Failed to write compression debug log: {e}")
            return None
