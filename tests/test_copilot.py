"""Tests for the Copilot clone pipeline."""

from __future__ import annotations

import copy

import pytest

from session_cloner.copilot import (
    CopilotCloneOptions,
    active_requests,
    apply_copilot_results,
    assistant_text,
    count_request_tokens,
    create_copilot_tasks,
    drop_earliest_requests,
    remove_tool_items,
    transform_copilot_requests,
)
from session_cloner.errors import OperationAbortedError, ValidationError
from session_cloner.models import CompressionBand, CompressionLevel, TaskStatus
from tests.builders import FakeProvider, build_copilot_doc, copilot_request, words

STANDARD = CompressionLevel.COMPRESS


def _tool_items(requests):
    return [
        item
        for r in requests
        for item in r["response"]
        if item.get("kind") in ("toolInvocationSerialized", "prepareToolInvocation")
    ]


class TestRequestHelpers:
    """Tests for request text and token helpers."""

    def test_canceled_requests_excluded(self):
        doc = build_copilot_doc(3)
        doc["requests"][1]["isCanceled"] = True
        assert [r["requestId"] for r in active_requests(doc)] == ["request_0", "request_2"]

    def test_assistant_text_joins_markdown(self):
        request = copilot_request(0, "q", "first")
        request["response"].append({"value": "second"})
        request["response"].append({"kind": "inlineReference", "value": "ignored"})
        assert assistant_text(request) == "first\n\nsecond"

    def test_token_count(self):
        request = copilot_request(0, "one two three four", "one two three four", tools=False)
        request["result"] = {
            "metadata": {"toolCallResults": {"c1": {"content": [{"value": "one two three four"}]}}}
        }
        assert count_request_tokens([request]) == 9


class TestTrimming:
    """Tests for tool removal and request dropping."""

    def test_remove_tool_items(self):
        requests = build_copilot_doc(4)["requests"]
        snapshot = copy.deepcopy(requests)
        out, removed = remove_tool_items(requests, 50)

        assert removed == 4
        assert _tool_items(out[:2]) == []
        assert len(_tool_items(out[2:])) == 4
        assert out[2] is requests[2]
        assert requests == snapshot

    def test_drop_earliest(self):
        requests = build_copilot_doc(10)["requests"]
        assert [r["requestId"] for r in drop_earliest_requests(requests, 30)][:1] == ["request_3"]
        assert drop_earliest_requests(requests, 0) == requests
        assert drop_earliest_requests(requests, 100) == []


class TestCopilotCompression:
    """Tests for Copilot compression tasks."""

    def test_task_slots(self, compression_config):
        requests = [copilot_request(i, words(60), words(60)) for i in range(2)]
        band = CompressionBand(0, 100, STANDARD)
        tasks = create_copilot_tasks(requests, [band, band], compression_config)
        assert [(t.message_index, t.entry_type) for t in tasks] == [
            (0, "user"), (1, "assistant"), (2, "user"), (3, "assistant"),
        ]

    def test_user_excluded(self, compression_config):
        requests = [copilot_request(0, words(60), words(60))]
        tasks = create_copilot_tasks(
            requests, [CompressionBand(0, 100, STANDARD)], compression_config, include_user_messages=False
        )
        assert [t.entry_type for t in tasks] == ["assistant"]

    def test_apply_results(self, compression_config):
        request = copilot_request(0, words(60), words(60))
        request["response"].insert(2, {"kind": "markdownContent", "value": "more"})
        tasks = create_copilot_tasks([request], [CompressionBand(0, 100, STANDARD)], compression_config)
        tasks[0].mark_success("short question")
        tasks[1].mark_success("short answer")

        out = apply_copilot_results([request], tasks)[0]
        assert out["message"]["text"] == "short question"
        assert assistant_text(out) == "short answer"
        assert len(_tool_items([out])) == 2
        assert out["response"][0] == {"kind": "markdownContent", "value": "short answer"}


class TestTransformCopilotRequests:
    """Tests for transform_copilot_requests."""

    @pytest.mark.asyncio
    async def test_drop_and_tool_removal(self, compression_config):
        doc = build_copilot_doc(10)
        doc["requests"][0]["isCanceled"] = True
        options = CopilotCloneOptions(tool_removal=100, drop_percent=50)

        outcome = await transform_copilot_requests(doc, options, None, compression_config)

        assert outcome.stats.original_turns == 9
        assert outcome.stats.cloned_turns == 5
        assert outcome.stats.removed_turns == 4
        assert outcome.stats.tool_items_removed == 10
        assert _tool_items(outcome.requests) == []
        assert outcome.requests[0]["requestId"] == "request_5"

    @pytest.mark.asyncio
    async def test_compression(self, compression_config):
        doc = build_copilot_doc(0)
        doc["requests"] = [copilot_request(i, words(60, f"q{i}"), words(60, f"a{i}")) for i in range(4)]
        provider = FakeProvider(respond=lambda text: "tiny")
        options = CopilotCloneOptions(bands=[CompressionBand(0, 50, STANDARD)])

        outcome = await transform_copilot_requests(doc, options, provider, compression_config)

        assert [r["message"]["text"] for r in outcome.requests[:2]] == ["tiny", "tiny"]
        assert outcome.requests[2]["message"]["text"] == words(60, "q2")
        assert outcome.stats.compression.messages_compressed == 4
        assert outcome.stats.cloned_tokens < outcome.stats.original_tokens
        assert all(t.status is TaskStatus.SUCCESS for t in outcome.tasks)
        assert outcome.stats.to_dict()["compression"]["messages_compressed"] == 4

    @pytest.mark.asyncio
    async def test_bands_without_provider(self, compression_config):
        options = CopilotCloneOptions(bands=[CompressionBand(0, 50, STANDARD)])
        with pytest.raises(ValidationError):
            await transform_copilot_requests(build_copilot_doc(2), options, None, compression_config)

    @pytest.mark.asyncio
    async def test_invalid_percent(self, compression_config):
        with pytest.raises(ValidationError):
            await transform_copilot_requests(
                build_copilot_doc(2), CopilotCloneOptions(drop_percent=120), None, compression_config
            )

    @pytest.mark.asyncio
    async def test_abort(self, compression_config):
        import asyncio

        abort = asyncio.Event()
        abort.set()
        doc = build_copilot_doc(0)
        doc["requests"] = [copilot_request(0, words(60), words(60))]
        options = CopilotCloneOptions(bands=[CompressionBand(0, 100, STANDARD)])
        with pytest.raises(OperationAbortedError):
            await transform_copilot_requests(doc, options, FakeProvider(), compression_config, abort)
