"""OpenRouter chat-completions provider."""

import os

import httpx

from session_cloner.config import Config
from session_cloner.errors import ConfigMissingError, ProviderError
from session_cloner.log_config import get_logger
from session_cloner.models import CompressionLevel
from session_cloner.providers.base import build_prompt, configured_targets, parse_compression_response

log = get_logger("providers.openrouter")

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"


class OpenRouterProvider:
    """Compress text through the OpenRouter HTTP API.

    Uses ``openrouter_model`` for ordinary spans and
    ``openrouter_model_large`` when the caller asks for the large model.
    """

    def __init__(self, config: Config, timeout: float = 120.0):
        if not config.openrouter_api_key:
            raise ConfigMissingError("OPENROUTER_API_KEY")
        self.api_key = config.openrouter_api_key
        self.model = config.openrouter_model
        self.model_large = config.openrouter_model_large
        self.targets = configured_targets(config)
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                    "HTTP-Referer": os.getenv("OPENROUTER_SITE_URL", ""),
                    "X-Title": os.getenv("OPENROUTER_SITE_NAME", "session-cloner"),
                },
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def compress(self, text: str, level: CompressionLevel, use_large_model: bool) -> str:
        model = self.model_large if use_large_model else self.model
        prompt = build_prompt(text, level, self.targets[CompressionLevel(level)])
        client = await self._get_client()

        try:
            response = await client.post(
                OPENROUTER_URL,
                json={
                    "model": model,
                    "messages": [{"role": "user", "content": prompt}],
                    "reasoning": {"effort": "minimal"},
                },
            )
        except httpx.RequestError as e:
            log.warning(f"OpenRouter request failed ({model}): {e}")
            raise ProviderError(f"OpenRouter request failed: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(f"OpenRouter API error {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError("Invalid response format from OpenRouter") from e

        if not isinstance(content, str):
            raise ProviderError("Invalid response format from OpenRouter")

        log.debug(f"OpenRouter {model}: {len(text)} -> {len(content)} chars (raw)")
        return parse_compression_response(content)
