"""Clone pipeline for VS Code Copilot chat sessions.

A Copilot session is one JSON document. Each non-canceled request is one
turn: the user's ``message.text`` plus a ``response`` list of items, where
markdown items carry the assistant's text and a few item kinds describe tool
activity.

Compression tasks reuse the orchestrator with a synthetic index: request
``i`` owns slot ``2*i`` for its user text and ``2*i + 1`` for its
assistant text.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from session_cloner.bands import map_turns_to_bands
from session_cloner.compression import calculate_stats, run_compression
from session_cloner.config import CompressionConfig
from session_cloner.errors import ValidationError
from session_cloner.log_config import get_logger
from session_cloner.models import (
    CompressionBand,
    CompressionStats,
    CompressionTask,
    TaskStatus,
)
from session_cloner.providers.base import CompressionProvider
from session_cloner.token_estimator import compact_json, estimate_tokens
from session_cloner.turns import removal_boundary

log = get_logger("copilot")

TOOL_ITEM_KINDS = ("toolInvocationSerialized", "prepareToolInvocation", "mcpServersStarting")
TEXT_ITEM_KINDS = ("markdownContent",)

CopilotRequest = dict[str, Any]


@dataclass
class CopilotCloneOptions:
    """Options for a Copilot clone.

    Attributes:
        tool_removal: Percent of earliest requests whose tool items are removed
        drop_percent: Percent of earliest requests dropped outright
        bands: Compression bands over the remaining requests
        include_user_messages: Compress user text as well as assistant text
    """

    tool_removal: int = 0
    drop_percent: int = 0
    bands: list[CompressionBand] = field(default_factory=list)
    include_user_messages: bool = True


@dataclass
class CopilotCloneStats:
    original_turns: int
    cloned_turns: int
    original_tokens: int
    cloned_tokens: int
    tool_items_removed: int = 0
    compression: CompressionStats | None = None

    @property
    def removed_turns(self) -> int:
        return self.original_turns - self.cloned_turns

    @property
    def removed_tokens(self) -> int:
        return self.original_tokens - self.cloned_tokens

    @property
    def reduction_percent(self) -> int:
        if self.original_tokens <= 0:
            return 0
        return round(self.removed_tokens / self.original_tokens * 100)

    def to_dict(self) -> dict:
        d = {
            "original_turns": self.original_turns,
            "cloned_turns": self.cloned_turns,
            "removed_turns": self.removed_turns,
            "original_tokens": self.original_tokens,
            "cloned_tokens": self.cloned_tokens,
            "removed_tokens": self.removed_tokens,
            "reduction_percent": self.reduction_percent,
            "tool_items_removed": self.tool_items_removed,
        }
        if self.compression is not None:
            d["compression"] = self.compression.to_dict()
        return d


@dataclass
class CopilotCloneOutcome:
    requests: list[CopilotRequest]
    stats: CopilotCloneStats
    tasks: list[CompressionTask] = field(default_factory=list)


def _is_text_item(item: Any) -> bool:
    if not isinstance(item, dict) or not isinstance(item.get("value"), str):
        return False
    kind = item.get("kind")
    return not kind or kind in TEXT_ITEM_KINDS


def _is_tool_item(item: Any) -> bool:
    return isinstance(item, dict) and item.get("kind") in TOOL_ITEM_KINDS


def _response_items(request: CopilotRequest) -> list[Any]:
    response = request.get("response")
    return response if isinstance(response, list) else []


def active_requests(doc: dict[str, Any]) -> list[CopilotRequest]:
    """Requests that were not canceled; one per turn."""
    return [r for r in doc.get("requests") or [] if isinstance(r, dict) and not r.get("isCanceled")]


def user_text(request: CopilotRequest) -> str:
    message = request.get("message")
    if isinstance(message, dict) and isinstance(message.get("text"), str):
        return message["text"]
    return ""


def assistant_text(request: CopilotRequest) -> str:
    """Markdown text of a response, items joined by blank lines."""
    return "\n\n".join(item["value"] for item in _response_items(request) if _is_text_item(item))


# ═══════════════════════════════════════════════════════════════════════════════
# TOKENS
# ═══════════════════════════════════════════════════════════════════════════════


def _tool_result_tokens(request: CopilotRequest) -> int:
    result = request.get("result")
    metadata = result.get("metadata") if isinstance(result, dict) else None
    tool_results = metadata.get("toolCallResults") if isinstance(metadata, dict) else None
    if not isinstance(tool_results, dict):
        return 0

    tokens = 0
    for call in tool_results.values():
        content = call.get("content") if isinstance(call, dict) else None
        if not isinstance(content, list):
            continue
        for item in content:
            value = item.get("value") if isinstance(item, dict) else None
            if isinstance(value, str):
                tokens += estimate_tokens(value)
            elif isinstance(value, dict):
                tokens += estimate_tokens(compact_json(value))
    return tokens


def count_request_tokens(requests: list[CopilotRequest]) -> int:
    """User text, response item values and tool results of all requests."""
    total = 0
    for request in requests:
        total += estimate_tokens(user_text(request))
        for item in _response_items(request):
            if isinstance(item, dict) and "value" in item:
                value = item["value"]
                total += estimate_tokens(value if isinstance(value, str) else str(value or ""))
        total += _tool_result_tokens(request)
    return total


# ═══════════════════════════════════════════════════════════════════════════════
# REMOVAL
# ═══════════════════════════════════════════════════════════════════════════════


def remove_tool_items(
    requests: list[CopilotRequest], tool_removal: int
) -> tuple[list[CopilotRequest], int]:
    """Drop tool items from the responses of the earliest requests.

    Returns:
        (requests, number of items removed)
    """
    boundary = removal_boundary(len(requests), tool_removal)
    removed = 0
    out: list[CopilotRequest] = []

    for index, request in enumerate(requests):
        items = _response_items(request)
        if index >= boundary or not any(_is_tool_item(i) for i in items):
            out.append(request)
            continue
        kept = [i for i in items if not _is_tool_item(i)]
        removed += len(items) - len(kept)
        out.append({**request, "response": kept})

    return out, removed


def drop_earliest_requests(requests: list[CopilotRequest], percent: int) -> list[CopilotRequest]:
    """Drop floor(n * percent / 100) requests from the front."""
    return requests[removal_boundary(len(requests), percent):]


# ═══════════════════════════════════════════════════════════════════════════════
# COMPRESSION
# ═══════════════════════════════════════════════════════════════════════════════


def create_copilot_tasks(
    requests: list[CopilotRequest],
    mapping: list[CompressionBand | None],
    config: CompressionConfig,
    include_user_messages: bool = True,
) -> list[CompressionTask]:
    """Create user and assistant tasks for each banded request."""
    tasks: list[CompressionTask] = []

    for turn_index, band in enumerate(mapping):
        if band is None:
            continue
        request = requests[turn_index]
        spans = [("assistant", turn_index * 2 + 1, assistant_text(request))]
        if include_user_messages:
            spans.insert(0, ("user", turn_index * 2, user_text(request)))

        for entry_type, slot, text in spans:
            task = CompressionTask(
                message_index=slot,
                entry_type=entry_type,
                original_content=text,
                level=band.level,
                estimated_tokens=estimate_tokens(text),
                timeout=config.timeout_for_attempt(1),
            )
            if task.estimated_tokens < config.min_tokens:
                task.mark_skipped()
            tasks.append(task)

    return tasks


def _replace_assistant_text(request: CopilotRequest, text: str) -> CopilotRequest:
    """Put ``text`` in the first markdown item and drop the other markdown items."""
    new_response: list[Any] = []
    replaced = False
    for item in _response_items(request):
        if _is_text_item(item):
            if not replaced:
                new_response.append({**item, "value": text})
                replaced = True
            continue
        new_response.append(item)

    if not replaced:
        new_response.insert(0, {"kind": "markdownContent", "value": text})
    return {**request, "response": new_response}


def apply_copilot_results(
    requests: list[CopilotRequest], tasks: list[CompressionTask]
) -> list[CopilotRequest]:
    """Write successful task results back into their requests."""
    user_results: dict[int, str] = {}
    assistant_results: dict[int, str] = {}
    for task in tasks:
        if task.status is not TaskStatus.SUCCESS or task.result is None:
            continue
        target = user_results if task.entry_type == "user" else assistant_results
        target[task.message_index // 2] = task.result

    out: list[CopilotRequest] = []
    for index, request in enumerate(requests):
        if index in user_results:
            message = request.get("message") if isinstance(request.get("message"), dict) else {}
            request = {**request, "message": {**message, "text": user_results[index]}}
        if index in assistant_results:
            request = _replace_assistant_text(request, assistant_results[index])
        out.append(request)
    return out


# ═══════════════════════════════════════════════════════════════════════════════
# PIPELINE
# ═══════════════════════════════════════════════════════════════════════════════


def validate_copilot_options(options: CopilotCloneOptions) -> None:
    for name in ("tool_removal", "drop_percent"):
        value = getattr(options, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 100:
            raise ValidationError(f"{name} must be between 0 and 100, got {value!r}")


async def transform_copilot_requests(
    doc: dict[str, Any],
    options: CopilotCloneOptions,
    provider: CompressionProvider | None,
    config: CompressionConfig,
    abort_event: asyncio.Event | None = None,
) -> CopilotCloneOutcome:
    """Run the Copilot pipeline over a parsed session document.

    Order: drop canceled requests, drop the earliest ``drop_percent``,
    remove tool items, then compress banded requests.

    Raises:
        ValidationError: If options or bands are invalid (checked first)
        OperationAbortedError: If compression was aborted
    """
    validate_copilot_options(options)

    original = active_requests(doc)
    requests = drop_earliest_requests(original, options.drop_percent)
    mapping = map_turns_to_bands(len(requests), options.bands)

    requests, tool_items_removed = remove_tool_items(requests, options.tool_removal)

    tasks: list[CompressionTask] = []
    compression_stats = None
    if options.bands:
        if provider is None:
            raise ValidationError("Compression bands given but no compression provider")
        tasks = create_copilot_tasks(requests, mapping, config, options.include_user_messages)
        tasks = await run_compression(tasks, provider, config, abort_event)
        requests = apply_copilot_results(requests, tasks)
        compression_stats = calculate_stats(tasks)

    stats = CopilotCloneStats(
        original_turns=len(original),
        cloned_turns=len(requests),
        original_tokens=count_request_tokens(original),
        cloned_tokens=count_request_tokens(requests),
        tool_items_removed=tool_items_removed,
        compression=compression_stats,
    )
    log.info(
        f"Copilot clone: {stats.original_turns} -> {stats.cloned_turns} turns, "
        f"{stats.original_tokens} -> {stats.cloned_tokens} tokens"
    )
    return CopilotCloneOutcome(requests=requests, stats=stats, tasks=tasks)
