"""Anthropic Claude provider using anthropic SDK with native async streaming."""

import logging
import time
from collections.abc import AsyncIterator

import anthropic as anthropic_sdk

from consensus.models import DoneChunk, GenerationOptions, Message, StreamChunk, TextChunk
from consensus.providers.base import ProviderError, SDKProvider, split_system

logger = logging.getLogger(__name__)


class AnthropicProvider(SDKProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def _create_client(self, api_key: str):
        return anthropic_sdk.AsyncAnthropic(api_key=api_key, timeout=self._config.timeout_sec)

    async def stream(self, messages: list[Message], options: GenerationOptions) -> AsyncIterator[StreamChunk]:
        client = self._get_client()
        system, conversation = split_system(messages)
        request: dict = {
            "model": self._config.model,
            "max_tokens": min(options.max_tokens, self._config.max_tokens),
            "temperature": options.temperature,
            "messages": [{"role": m["role"], "content": m["content"]} for m in conversation],
        }
        if system:
            request["system"] = system

        start = time.monotonic()
        try:
            async with client.messages.stream(**request) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield TextChunk(text)
                final = await stream.get_final_message()
        except anthropic_sdk.APITimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except anthropic_sdk.APIError as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        output_tokens = final.usage.output_tokens if final.usage else None
        logger.info(
            "Anthropic stream %s: %.2fs, %s output tokens",
            self._config.model,
            time.monotonic() - start,
            output_tokens,
        )
        yield DoneChunk(output_tokens)
