"""Gemini provider using google-genai SDK with native async streaming."""

import logging
import time
from collections.abc import AsyncIterator

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from consensus.models import DoneChunk, GenerationOptions, Message, StreamChunk, TextChunk
from consensus.providers.base import ProviderError, SDKProvider, split_system

logger = logging.getLogger(__name__)


def _to_contents(messages: list[Message]) -> list[genai_types.Content]:
    """Gemini names the assistant role 'model'."""
    return [
        genai_types.Content(
            role="model" if m["role"] == "assistant" else "user",
            parts=[genai_types.Part(text=m["content"])],
        )
        for m in messages
    ]


class GeminiProvider(SDKProvider):
    """Google Gemini provider via google-genai SDK."""

    def _create_client(self, api_key: str):
        return genai.Client(
            api_key=api_key,
            http_options=genai_types.HttpOptions(timeout=self._config.timeout_sec * 1000),
        )

    async def stream(self, messages: list[Message], options: GenerationOptions) -> AsyncIterator[StreamChunk]:
        client = self._get_client()
        system, conversation = split_system(messages)
        start = time.monotonic()
        output_tokens: int | None = None
        try:
            response = await client.aio.models.generate_content_stream(
                model=self._config.model,
                contents=_to_contents(conversation),
                config=genai_types.GenerateContentConfig(
                    system_instruction=system,
                    max_output_tokens=min(options.max_tokens, self._config.max_tokens),
                    temperature=options.temperature,
                ),
            )
            async for chunk in response:
                if chunk.usage_metadata and chunk.usage_metadata.candidates_token_count is not None:
                    output_tokens = chunk.usage_metadata.candidates_token_count
                if chunk.text:
                    yield TextChunk(chunk.text)
        except genai_errors.APIError as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc

        logger.info(
            "Gemini stream %s: %.2fs, %s output tokens",
            self._config.model,
            time.monotonic() - start,
            output_tokens,
        )
        yield DoneChunk(output_tokens)
