"""Tests for compression providers.

Tests:
- parse_compression_response() - fences, preambles, broken JSON, empty text
- build_prompt() - target percent and content fence
- get_provider() - selection, caching, unknown names
- OpenRouterProvider, LiteLLMProvider, ClaudeCliProvider with mocked I/O
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from session_cloner.config import CompressionConfig, Config
from session_cloner.errors import ConfigMissingError, ProviderError
from session_cloner.models import CompressionLevel
from session_cloner.providers import (
    ClaudeCliProvider,
    CompressionProvider,
    LiteLLMProvider,
    OpenRouterProvider,
    build_prompt,
    get_provider,
    parse_compression_response,
    reset_provider,
)
from session_cloner.providers.openrouter import OPENROUTER_URL


def _config(tmp_path, **overrides) -> Config:
    values = dict(
        claude_dir=tmp_path,
        vscode_storage_path=tmp_path,
        debug_log_dir=tmp_path,
        llm_provider="openrouter",
        openrouter_api_key="key-123",
        openrouter_model="small/model",
        openrouter_model_large="large/model",
        litellm_model="lite/small",
        litellm_model_large="lite/large",
        cli_model="haiku",
        cli_model_large="opus",
    )
    values.update(overrides)
    return Config(**values)


# ============================================================================
# Response parsing
# ============================================================================


class TestParseCompressionResponse:
    """Tests for parse_compression_response."""

    def test_plain_json(self):
        assert parse_compression_response('{"text": "short version"}') == "short version"

    def test_code_fence(self):
        raw = 'Here you go:\n```json\n{"text": "fenced"}\n```'
        assert parse_compression_response(raw) == "fenced"

    def test_preamble_and_trailer(self):
        raw = 'Sure! {"text": "embedded"} Hope that helps.'
        assert parse_compression_response(raw) == "embedded"

    def test_repairs_broken_json(self):
        """A truncated object is repaired before validation."""
        assert parse_compression_response('{"text": "almost done"') == "almost done"

    @pytest.mark.parametrize("raw", ["", "   ", '{"text": ""}', '{"summary": "x"}', "[1, 2, 3]"])
    def test_invalid_answers(self, raw):
        """Empty answers, empty text or a missing text field are provider errors."""
        with pytest.raises(ProviderError):
            parse_compression_response(raw)


class TestBuildPrompt:
    """Tests for build_prompt."""

    def test_targets_by_level(self):
        assert "approximately 35%" in build_prompt("x", CompressionLevel.COMPRESS)
        assert "approximately 10%" in build_prompt("x", CompressionLevel.HEAVY_COMPRESS)

    def test_level_as_string_and_override(self):
        assert "approximately 20%" in build_prompt("x", "compress", target_percent=20)

    @pytest.mark.asyncio
    async def test_providers_use_configured_targets(self, tmp_path, monkeypatch):
        """SESSION_CLONER_COMPRESSION_TARGET_* reach the prompt a provider sends."""
        monkeypatch.setenv("SESSION_CLONER_COMPRESSION_TARGET_HEAVY", "50")
        monkeypatch.setenv("SESSION_CLONER_COMPRESSION_TARGET_STANDARD", "60")
        mock = AsyncMock(return_value=_completion('{"text": "short"}'))
        with patch("session_cloner.providers.litellm_provider.acompletion", mock):
            provider = LiteLLMProvider(_config(tmp_path, compression=CompressionConfig()))
            await provider.compress("text", CompressionLevel.HEAVY_COMPRESS, False)
            heavy_prompt = mock.call_args.kwargs["messages"][0]["content"]
            await provider.compress("text", "compress", False)
            standard_prompt = mock.call_args.kwargs["messages"][0]["content"]

        assert "approximately 50%" in heavy_prompt
        assert "approximately 60%" in standard_prompt

    def test_content_fenced(self):
        prompt = build_prompt("the span", CompressionLevel.COMPRESS)
        assert prompt.endswith("<<<CONTENT\nthe span\nCONTENT")
        assert '{"text": "your compressed text"}' in prompt


# ============================================================================
# Provider selection
# ============================================================================


class TestGetProvider:
    """Tests for get_provider."""

    @pytest.mark.parametrize(
        "name,cls",
        [("openrouter", OpenRouterProvider), ("cc-cli", ClaudeCliProvider), ("litellm", LiteLLMProvider)],
    )
    def test_selects_by_name(self, tmp_path, name, cls):
        provider = get_provider(_config(tmp_path, llm_provider=name))
        assert isinstance(provider, cls)
        assert isinstance(provider, CompressionProvider)

    def test_cached(self, tmp_path):
        config = _config(tmp_path)
        assert get_provider(config) is get_provider(config)
        reset_provider()
        assert get_provider(config) is not None

    def test_unknown_provider(self, tmp_path):
        with pytest.raises(ConfigMissingError, match="LLM_PROVIDER"):
            get_provider(_config(tmp_path, llm_provider="carrier-pigeon"))

    def test_openrouter_requires_key(self, tmp_path):
        with pytest.raises(ConfigMissingError, match="OPENROUTER_API_KEY"):
            get_provider(_config(tmp_path, openrouter_api_key=None))


# ============================================================================
# OpenRouter
# ============================================================================


def _openrouter_with(handler, tmp_path) -> OpenRouterProvider:
    provider = OpenRouterProvider(_config(tmp_path))
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return provider


class TestOpenRouterProvider:
    """Tests for OpenRouterProvider over a mock transport."""

    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"choices": [{"message": {"content": '{"text": "tiny"}'}}]}
            )

        provider = _openrouter_with(handler, tmp_path)
        result = await provider.compress("long text", CompressionLevel.COMPRESS, use_large_model=False)
        await provider.close()

        assert result == "tiny"
        assert seen["url"] == OPENROUTER_URL
        assert seen["body"]["model"] == "small/model"
        assert seen["body"]["reasoning"] == {"effort": "minimal"}
        assert "long text" in seen["body"]["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_large_model(self, tmp_path):
        models = []

        def handler(request):
            models.append(json.loads(request.content)["model"])
            return httpx.Response(200, json={"choices": [{"message": {"content": '{"text": "x"}'}}]})

        provider = _openrouter_with(handler, tmp_path)
        await provider.compress("t", CompressionLevel.HEAVY_COMPRESS, use_large_model=True)
        assert models == ["large/model"]

    @pytest.mark.asyncio
    async def test_http_error(self, tmp_path):
        provider = _openrouter_with(lambda r: httpx.Response(429, text="rate limited"), tmp_path)
        with pytest.raises(ProviderError, match="429"):
            await provider.compress("t", CompressionLevel.COMPRESS, False)

    @pytest.mark.asyncio
    async def test_bad_format(self, tmp_path):
        provider = _openrouter_with(lambda r: httpx.Response(200, json={"choices": []}), tmp_path)
        with pytest.raises(ProviderError, match="format"):
            await provider.compress("t", CompressionLevel.COMPRESS, False)

    @pytest.mark.asyncio
    async def test_network_error(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = _openrouter_with(handler, tmp_path)
        with pytest.raises(ProviderError, match="request failed"):
            await provider.compress("t", CompressionLevel.COMPRESS, False)


# ============================================================================
# LiteLLM
# ============================================================================


def _completion(content):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


class TestLiteLLMProvider:
    """Tests for LiteLLMProvider with acompletion patched."""

    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        mock = AsyncMock(return_value=_completion('{"text": "lite"}'))
        with patch("session_cloner.providers.litellm_provider.acompletion", mock):
            provider = LiteLLMProvider(_config(tmp_path))
            result = await provider.compress("text", CompressionLevel.COMPRESS, use_large_model=True)

        assert result == "lite"
        assert mock.call_args.kwargs["model"] == "lite/large"
        assert mock.call_args.kwargs["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_sdk_error_wrapped(self, tmp_path):
        mock = AsyncMock(side_effect=RuntimeError("quota"))
        with patch("session_cloner.providers.litellm_provider.acompletion", mock):
            provider = LiteLLMProvider(_config(tmp_path))
            with pytest.raises(ProviderError, match="quota"):
                await provider.compress("text", CompressionLevel.COMPRESS, False)

    @pytest.mark.asyncio
    async def test_empty_response(self, tmp_path):
        mock = AsyncMock(return_value=_completion(None))
        with patch("session_cloner.providers.litellm_provider.acompletion", mock):
            provider = LiteLLMProvider(_config(tmp_path))
            with pytest.raises(ProviderError, match="Empty"):
                await provider.compress("text", CompressionLevel.COMPRESS, False)


# ============================================================================
# Claude CLI
# ============================================================================


def _process(stdout: bytes, returncode: int = 0, stderr: bytes = b""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    return proc


class TestClaudeCliProvider:
    """Tests for ClaudeCliProvider with the subprocess mocked."""

    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        stdout = json.dumps({"result": '{"text": "from cli"}'}).encode()
        spawn = AsyncMock(return_value=_process(stdout))
        with patch("session_cloner.providers.cli.asyncio.create_subprocess_exec", spawn):
            provider = ClaudeCliProvider(_config(tmp_path))
            result = await provider.compress("text", CompressionLevel.COMPRESS, use_large_model=False)

        assert result == "from cli"
        args = spawn.call_args.args
        assert args[:2] == ("claude", "-p")
        assert "haiku" in args
        assert "MAX_THINKING_TOKENS" not in spawn.call_args.kwargs["env"]

    @pytest.mark.asyncio
    async def test_large_model_gets_thinking_budget(self, tmp_path):
        stdout = json.dumps({"result": '{"text": "x"}'}).encode()
        spawn = AsyncMock(return_value=_process(stdout))
        with patch("session_cloner.providers.cli.asyncio.create_subprocess_exec", spawn):
            await ClaudeCliProvider(_config(tmp_path)).compress("t", CompressionLevel.COMPRESS, True)

        assert "opus" in spawn.call_args.args
        assert spawn.call_args.kwargs["env"]["MAX_THINKING_TOKENS"] == "8000"

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, tmp_path):
        spawn = AsyncMock(return_value=_process(b"", returncode=1, stderr=b"not logged in"))
        with patch("session_cloner.providers.cli.asyncio.create_subprocess_exec", spawn):
            with pytest.raises(ProviderError, match="not logged in"):
                await ClaudeCliProvider(_config(tmp_path)).compress("t", CompressionLevel.COMPRESS, False)

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        spawn = AsyncMock(side_effect=FileNotFoundError())
        with patch("session_cloner.providers.cli.asyncio.create_subprocess_exec", spawn):
            with pytest.raises(ProviderError, match="not found"):
                await ClaudeCliProvider(_config(tmp_path)).compress("t", CompressionLevel.COMPRESS, False)

    @pytest.mark.asyncio
    async def test_raw_stdout_fallback(self, tmp_path):
        """Non-JSON CLI output is parsed directly."""
        spawn = AsyncMock(return_value=_process(b'```json\n{"text": "raw"}\n```'))
        with patch("session_cloner.providers.cli.asyncio.create_subprocess_exec", spawn):
            result = await ClaudeCliProvider(_config(tmp_path)).compress("t", CompressionLevel.COMPRESS, False)
        assert result == "raw"
