"""loguru setup for Session Cloner.

Two sinks are installed at import time:

- stderr, gated by SESSION_CLONER_LOG_LEVEL (INFO by default) with
  per-component overrides
- a DEBUG file under ~/.session_cloner/logs, rotated at 10 MB, kept 7 days,
  zipped when rotated

Environment:
- SESSION_CLONER_LOG_LEVEL: level for the stderr sink
- SESSION_CLONER_LOG_COMPRESSION: override for the compression orchestrator
- SESSION_CLONER_LOG_PROVIDERS: override for compression providers
- SESSION_CLONER_LOG_DIR: directory of the file sink
"""

import os
import sys
from contextlib import contextmanager
from pathlib import Path
from time import perf_counter

from loguru import logger

_console_level = os.getenv("SESSION_CLONER_LOG_LEVEL", "INFO").upper()

# Bound logger name fragment -> level
_overrides: dict[str, str] = {
    component: os.getenv(f"SESSION_CLONER_LOG_{component.upper()}", "").upper()
    for component in ("compression", "providers")
}


def _level_no(level: str) -> int | None:
    try:
        return logger.level(level).no
    except ValueError:
        return None


def _console_filter(record) -> bool:
    """Let a record through if it meets its component's level (or the global one)."""
    name = record["extra"].get("name", "")
    for component, level in _overrides.items():
        threshold = _level_no(level) if level and component in name else None
        if threshold is not None:
            return record["level"].no >= threshold

    threshold = _level_no(_console_level)
    return threshold is None or record["level"].no >= threshold


def set_console_level(level: str) -> None:
    """Change the stderr threshold at runtime (used by the CLI's --verbose)."""
    global _console_level
    _console_level = level.upper()


logger.remove()
logger.configure(extra={"name": "session_cloner"})

logger.add(
    sys.stderr,
    level=0,
    filter=_console_filter,
    format=(
        "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
    ),
    colorize=True,
)

_log_dir = Path(os.getenv("SESSION_CLONER_LOG_DIR", str(Path.home() / ".session_cloner" / "logs")))
try:
    _log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        _log_dir / "session_cloner_{time:YYYY-MM-DD}.log",
        level="DEBUG",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[name]}:{function}:{line} | {message}",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
    )
except OSError as e:
    logger.bind(name="log_config").warning(f"File logging disabled ({_log_dir}): {e}")


def get_logger(name: str):
    """Return the shared logger bound to a component name."""
    return logger.bind(name=name)


@contextmanager
def log_timing(operation: str, log_instance=None, level: str = "debug"):
    """Log how long the wrapped block took.

    Yields a dict whose ``elapsed_ms`` is filled in on exit:

        with log_timing("removal", log) as t:
            apply_removals(entries, options)
        print(t["elapsed_ms"])
    """
    target = log_instance or logger
    timing = {"elapsed_ms": 0.0}
    started = perf_counter()
    try:
        yield timing
    finally:
        timing["elapsed_ms"] = (perf_counter() - started) * 1000
        getattr(target, level)(f"{operation} took {timing['elapsed_ms']:.1f}ms")


__all__ = ["get_logger", "log_timing", "logger", "set_console_level"]
