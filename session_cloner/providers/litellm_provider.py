"""LiteLLM SDK provider."""

from litellm import acompletion

from session_cloner.config import Config
from session_cloner.errors import ProviderError
from session_cloner.log_config import get_logger
from session_cloner.models import CompressionLevel
from session_cloner.providers.base import build_prompt, configured_targets, parse_compression_response

log = get_logger("providers.litellm")


class LiteLLMProvider:
    """Compress text through any model LiteLLM can reach."""

    def __init__(self, config: Config):
        self.model = config.litellm_model
        self.model_large = config.litellm_model_large
        self.targets = configured_targets(config)

    async def compress(self, text: str, level: CompressionLevel, use_large_model: bool) -> str:
        model = self.model_large if use_large_model else self.model
        prompt = build_prompt(text, level, self.targets[CompressionLevel(level)])

        try:
            response = await acompletion(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.1,
            )
        except Exception as e:
            log.warning(f"LiteLLM call failed ({model}): {e}")
            raise ProviderError(f"LiteLLM call failed: {e}") from e

        if not response.choices or not response.choices[0].message.content:
            raise ProviderError("Empty LLM response")

        return parse_compression_response(response.choices[0].message.content)
