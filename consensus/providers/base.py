"""Abstract base for all streaming AI model providers."""

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from config.config_loader import ModelConfig
from consensus.models import GenerationOptions, Message, StreamChunk

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class ProviderNotConfiguredError(ProviderError):
    """Raised when a provider is used without credentials."""


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the model id used on the wire (e.g. 'claude-opus-4')."""
        ...

    @abstractmethod
    def display_name(self) -> str:
        """Return the human readable model name."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string sent to the API."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True when the provider has the credentials it needs."""
        ...

    @abstractmethod
    def stream(self, messages: list[Message], options: GenerationOptions) -> AsyncIterator[StreamChunk]:
        """Stream a completion for the given role-tagged messages.

        Yields TextChunk for every text fragment, then a single DoneChunk
        carrying the output token count reported by the API. The sequence
        is finite and cannot be restarted.

        Raises:
            ProviderError: On API failure, timeout, or missing credentials.
        """
        ...


class SDKProvider(AIProvider):
    """Shared plumbing for providers backed by a vendor SDK and an API key."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        self._client = None

    def name(self) -> str:
        return self._config.name

    def display_name(self) -> str:
        return self._config.display_name

    def model_string(self) -> str:
        return self._config.model

    def _api_key(self) -> str:
        return os.environ.get(self._config.api_key_env, "").strip()

    def is_configured(self) -> bool:
        return bool(self._api_key())

    def _get_client(self):
        if self._client is None:
            api_key = self._api_key()
            if not api_key:
                raise ProviderNotConfiguredError(
                    self._config.name, f"Missing API key: {self._config.api_key_env}"
                )
            self._client = self._create_client(api_key)
        return self._client

    @abstractmethod
    def _create_client(self, api_key: str):
        ...


def split_system(messages: list[Message]) -> tuple[str | None, list[Message]]:
    """Separate the system instruction from the conversational messages.

    Multiple system messages are joined; APIs that take a dedicated system
    field only accept one.
    """
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    rest = [m for m in messages if m["role"] != "system"]
    return ("\n\n".join(system_parts) if system_parts else None), rest
