"""OpenAI provider using openai SDK with native async streaming."""

import logging
import time
from collections.abc import AsyncIterator

import openai
from openai import AsyncOpenAI

from consensus.models import DoneChunk, GenerationOptions, Message, StreamChunk, TextChunk
from consensus.providers.base import ProviderError, SDKProvider

logger = logging.getLogger(__name__)

# Reasoning models only accept the default temperature.
_FIXED_TEMPERATURE_PREFIXES = ("gpt-5", "o1", "o3", "o4")


class OpenAIProvider(SDKProvider):
    """OpenAI provider via openai SDK."""

    def _create_client(self, api_key: str):
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url, timeout=self._config.timeout_sec)

    def _request(self, messages: list[Message], options: GenerationOptions) -> dict:
        request: dict = {
            "model": self._config.model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            "max_completion_tokens": min(options.max_tokens, self._config.max_tokens),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if not self._config.model.startswith(_FIXED_TEMPERATURE_PREFIXES):
            request["temperature"] = options.temperature
        return request

    async def stream(self, messages: list[Message], options: GenerationOptions) -> AsyncIterator[StreamChunk]:
        client = self._get_client()
        start = time.monotonic()
        output_tokens: int | None = None
        try:
            response = await client.chat.completions.create(**self._request(messages, options))
            async for event in response:
                if event.usage is not None:
                    output_tokens = event.usage.completion_tokens
                if not event.choices:
                    continue
                delta = event.choices[0].delta
                if delta is not None and delta.content:
                    yield TextChunk(delta.content)
        except openai.APITimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except openai.APIError as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        logger.info(
            "OpenAI stream %s: %.2fs, %s output tokens",
            self._config.model,
            time.monotonic() - start,
            output_tokens,
        )
        yield DoneChunk(output_tokens)
