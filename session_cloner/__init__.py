"""Session Cloner - smaller copies of AI coding-assistant sessions.

Produces a derivative of a Claude Code or VS Code Copilot session log with:
- Tool calls removed or truncated in the oldest turns
- Thinking blocks removed in the oldest turns
- Older text optionally rewritten by an LLM, band by band
- A repaired parentUuid chain and a fresh session identity
"""

__version__ = "0.1.0"

from session_cloner.cloner import SessionCloner
from session_cloner.config import Config
from session_cloner.models import (
    CloneResult,
    CompressionBand,
    CompressionLevel,
    RemovalOptions,
    ToolHandlingMode,
)
from session_cloner.removal import apply_removals
from session_cloner.turns import identify_turns

__all__ = [
    "CloneResult",
    "CompressionBand",
    "CompressionLevel",
    "Config",
    "RemovalOptions",
    "SessionCloner",
    "ToolHandlingMode",
    "apply_removals",
    "identify_turns",
]
