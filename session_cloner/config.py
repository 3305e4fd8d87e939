"""Configuration for Session Cloner.

Dataclass settings; every field can be overridden with a SESSION_CLONER_* variable.
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from session_cloner.log_config import get_logger

log = get_logger("config")

# .env beside the package, else one level up
_pkg_dir = Path(__file__).parent.parent
_env_loaded = load_dotenv(_pkg_dir / ".env") or load_dotenv(_pkg_dir.parent / ".env")
log.debug(f"Loaded .env file: {_env_loaded}")

PROVIDER_TYPES = ("openrouter", "cc-cli", "litellm")


def _get_env(key: str, default: str) -> str:
    """Get environment variable with SESSION_CLONER_ prefix."""
    return os.getenv(f"SESSION_CLONER_{key}", default)


def _get_env_int(key: str, default: int) -> int:
    """Get integer environment variable, falling back on parse errors."""
    raw = os.getenv(f"SESSION_CLONER_{key}")
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning(f"SESSION_CLONER_{key}={raw!r} is not an integer, using {default}")
        return default


def _get_env_float(key: str, default: float) -> float:
    """Get float environment variable, falling back on parse errors."""
    raw = os.getenv(f"SESSION_CLONER_{key}")
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning(f"SESSION_CLONER_{key}={raw!r} is not a number, using {default}")
        return default


def default_vscode_storage_path() -> Path:
    """Return the VS Code workspaceStorage directory for this platform.

    Platform defaults:
    - macOS: ~/Library/Application Support/Code/User/workspaceStorage
    - Linux: ~/.config/Code/User/workspaceStorage
    - Windows: %APPDATA%/Code/User/workspaceStorage
    """
    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "Code" / "User" / "workspaceStorage"
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA", str(home))) / "Code" / "User" / "workspaceStorage"
    return home / ".config" / "Code" / "User" / "workspaceStorage"


@dataclass
class CompressionConfig:
    """Settings for the compression batch orchestrator.

    Attributes:
        concurrency: Maximum provider calls in flight (default: 10)
        timeout_initial: Timeout for the first attempt in seconds (default: 5)
        timeout_increment: Extra seconds added per retry (default: 5)
        max_attempts: Attempts before a task is marked failed (default: 4)
        min_tokens: Spans below this estimate are skipped (default: 30)
        thinking_threshold: Spans above this estimate use the large model (default: 1000)
        target_heavy: Target size percent for heavy-compress (default: 10)
        target_standard: Target size percent for compress (default: 35)
    """

    concurrency: int = field(default_factory=lambda: _get_env_int("COMPRESSION_CONCURRENCY", 10))
    timeout_initial: float = field(
        default_factory=lambda: _get_env_float("COMPRESSION_TIMEOUT_INITIAL", 5.0)
    )
    timeout_increment: float = field(
        default_factory=lambda: _get_env_float("COMPRESSION_TIMEOUT_INCREMENT", 5.0)
    )
    max_attempts: int = field(default_factory=lambda: _get_env_int("COMPRESSION_MAX_ATTEMPTS", 4))
    min_tokens: int = field(default_factory=lambda: _get_env_int("COMPRESSION_MIN_TOKENS", 30))
    thinking_threshold: int = field(
        default_factory=lambda: _get_env_int("COMPRESSION_THINKING_THRESHOLD", 1000)
    )
    target_heavy: int = field(default_factory=lambda: _get_env_int("COMPRESSION_TARGET_HEAVY", 10))
    target_standard: int = field(
        default_factory=lambda: _get_env_int("COMPRESSION_TARGET_STANDARD", 35)
    )

    def __post_init__(self):
        """Clamp values that would stall or disable the worker pool."""
        if self.concurrency < 1:
            log.warning(f"concurrency={self.concurrency} is invalid, using 1")
            self.concurrency = 1
        if self.max_attempts < 1:
            log.warning(f"max_attempts={self.max_attempts} is invalid, using 1")
            self.max_attempts = 1

    def timeout_for_attempt(self, attempt: int) -> float:
        """Timeout in seconds for a 1-based attempt number."""
        return self.timeout_initial + (attempt - 1) * self.timeout_increment


@dataclass
class Config:
    """Session Cloner configuration.

    Attributes:
        claude_dir: Claude Code home (default: ~/.claude)
        vscode_storage_path: VS Code workspaceStorage directory (platform default)
        llm_provider: Compression backend: openrouter, cc-cli or litellm (default: openrouter)
        openrouter_api_key: API key for the OpenRouter provider
        openrouter_model: Model for ordinary spans
        openrouter_model_large: Model for spans above the thinking threshold
        litellm_model: LiteLLM model for ordinary spans
        litellm_model_large: LiteLLM model for large spans
        cli_model: Claude CLI model for ordinary spans
        cli_model_large: Claude CLI model for large spans
        debug_log_dir: Where compression debug reports are written
        compression: Orchestrator settings
    """

    claude_dir: Path = field(
        default_factory=lambda: Path(_get_env("CLAUDE_DIR", str(Path.home() / ".claude")))
    )
    vscode_storage_path: Path = field(
        default_factory=lambda: Path(
            _get_env("VSCODE_STORAGE_PATH", str(default_vscode_storage_path()))
        )
    )
    llm_provider: str = field(default_factory=lambda: _get_env("LLM_PROVIDER", "openrouter"))
    openrouter_api_key: str | None = field(
        default_factory=lambda: os.getenv("SESSION_CLONER_OPENROUTER_API_KEY")
        or os.getenv("OPENROUTER_API_KEY")
    )
    openrouter_model: str = field(
        default_factory=lambda: _get_env("OPENROUTER_MODEL", "google/gemini-2.5-flash")
    )
    openrouter_model_large: str = field(
        default_factory=lambda: _get_env("OPENROUTER_MODEL_LARGE", "anthropic/claude-opus-4.5")
    )
    litellm_model: str = field(
        default_factory=lambda: _get_env("LITELLM_MODEL", "gemini/gemini-2.5-flash-lite")
    )
    litellm_model_large: str = field(
        default_factory=lambda: _get_env("LITELLM_MODEL_LARGE", "anthropic/claude-opus-4-5")
    )
    cli_model: str = field(
        default_factory=lambda: _get_env("CLI_MODEL", "claude-haiku-4-5-20251001")
    )
    cli_model_large: str = field(
        default_factory=lambda: _get_env("CLI_MODEL_LARGE", "claude-opus-4-5-20251101")
    )
    debug_log_dir: Path = field(
        default_factory=lambda: Path(_get_env("DEBUG_LOG_DIR", str(Path.cwd() / "clone-debug-log")))
    )
    compression: CompressionConfig = field(default_factory=CompressionConfig)

    def __post_init__(self):
        """Ensure paths are Path objects and log the resolved configuration."""
        if isinstance(self.claude_dir, str):
            self.claude_dir = Path(self.claude_dir)
        if isinstance(self.vscode_storage_path, str):
            self.vscode_storage_path = Path(self.vscode_storage_path)
        if isinstance(self.debug_log_dir, str):
            self.debug_log_dir = Path(self.debug_log_dir)

        log.debug(f"claude_dir={self.claude_dir}")
        log.debug(f"vscode_storage_path={self.vscode_storage_path}")
        log.debug(f"llm_provider={self.llm_provider}")
        log.debug(
            f"compression: concurrency={self.compression.concurrency}, "
            f"max_attempts={self.compression.max_attempts}, "
            f"min_tokens={self.compression.min_tokens}"
        )

    @property
    def projects_dir(self) -> Path:
        """Directory holding one folder per Claude Code project."""
        return self.claude_dir / "projects"

    @property
    def lineage_log_path(self) -> Path:
        """Append-only log recording which clone came from which source."""
        return self.claude_dir / "clone-lineage.log"
