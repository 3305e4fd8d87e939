"""Shared pytest fixtures for Session Cloner tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from session_cloner.config import CompressionConfig, Config
from session_cloner.providers import reset_provider
from tests.builders import FakeProvider, build_session


@pytest.fixture
def session_factory():
    """Build synthetic Claude Code sessions."""
    return build_session


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def compression_config() -> CompressionConfig:
    """Fast orchestrator settings for tests."""
    return CompressionConfig(
        concurrency=3,
        timeout_initial=1.0,
        timeout_increment=1.0,
        max_attempts=3,
        min_tokens=30,
        thinking_threshold=1000,
        target_heavy=10,
        target_standard=35,
    )


@pytest.fixture
def config(tmp_path: Path, compression_config: CompressionConfig) -> Config:
    """Config rooted in a temporary directory."""
    claude_dir = tmp_path / "claude"
    (claude_dir / "projects").mkdir(parents=True)
    storage = tmp_path / "workspaceStorage"
    storage.mkdir()
    return Config(
        claude_dir=claude_dir,
        vscode_storage_path=storage,
        llm_provider="openrouter",
        openrouter_api_key="test-key",
        debug_log_dir=tmp_path / "debug",
        compression=compression_config,
    )


@pytest.fixture(autouse=True)
def _reset_provider_cache():
    """Each test starts without a cached provider."""
    reset_provider()
    yield
    reset_provider()
