"""Claude CLI provider.

Runs ``claude -p`` in one-shot mode, so compression reuses whatever login the
local CLI already has. The prompt goes in on stdin; with
``--output-format json`` the CLI answers ``{"result": "..."}``.
"""

import asyncio
import json
import os

from session_cloner.config import Config
from session_cloner.errors import ProviderError
from session_cloner.log_config import get_logger
from session_cloner.models import CompressionLevel
from session_cloner.providers.base import build_prompt, configured_targets, parse_compression_response

log = get_logger("providers.cli")

# Thinking budget granted to the large model
LARGE_MODEL_THINKING_TOKENS = "8000"


class ClaudeCliProvider:
    """Compress text by shelling out to the ``claude`` CLI."""

    def __init__(self, config: Config, executable: str = "claude"):
        self.executable = executable
        self.model = config.cli_model
        self.model_large = config.cli_model_large
        self.targets = configured_targets(config)

    def _command(self, model: str) -> list[str]:
        return [
            self.executable,
            "-p",
            "--model",
            model,
            "--output-format",
            "json",
            "--max-turns",
            "1",
        ]

    def _env(self, use_large_model: bool) -> dict[str, str]:
        env = dict(os.environ)
        if use_large_model:
            env["MAX_THINKING_TOKENS"] = LARGE_MODEL_THINKING_TOKENS
        else:
            env.pop("MAX_THINKING_TOKENS", None)
        return env

    async def compress(self, text: str, level: CompressionLevel, use_large_model: bool) -> str:
        model = self.model_large if use_large_model else self.model
        prompt = build_prompt(text, level, self.targets[CompressionLevel(level)])

        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command(model),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env(use_large_model),
            )
        except FileNotFoundError as e:
            raise ProviderError(
                f"Claude CLI not found. Is '{self.executable}' installed and in PATH?"
            ) from e

        try:
            stdout, stderr = await proc.communicate(prompt.encode("utf-8"))
        except asyncio.CancelledError:
            # Timed out by the orchestrator: don't leave the CLI running
            if proc.returncode is None:
                proc.kill()
            raise

        if proc.returncode != 0:
            raise ProviderError(
                f"Claude CLI exited with code {proc.returncode}: {stderr.decode('utf-8', 'replace')[:500]}"
            )

        output = stdout.decode("utf-8", "replace")
        try:
            cli_output = json.loads(output)
        except json.JSONDecodeError:
            cli_output = None

        if isinstance(cli_output, dict):
            answer = cli_output.get("result") or cli_output.get("text") or output
        else:
            answer = output

        log.debug(f"claude {model}: {len(text)} -> {len(answer)} chars (raw)")
        return parse_compression_response(answer)
