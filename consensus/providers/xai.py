"""xAI Grok provider using openai SDK (OpenAI-compatible API)."""

from config.config_loader import ModelConfig
from consensus.models import GenerationOptions, Message
from consensus.providers.base import ProviderError
from consensus.providers.openai_provider import OpenAIProvider


class XAIProvider(OpenAIProvider):
    """xAI Grok provider via OpenAI-compatible API."""

    def __init__(self, config: ModelConfig) -> None:
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for xAI provider")
        super().__init__(config)

    def _request(self, messages: list[Message], options: GenerationOptions) -> dict:
        request = super()._request(messages, options)
        # The xAI endpoint still expects the legacy parameter name.
        request["max_tokens"] = request.pop("max_completion_tokens")
        request["temperature"] = options.temperature
        return request
