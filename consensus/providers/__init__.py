"""Streaming provider implementations keyed by the `sdk` field in settings.yaml."""

import logging

from config.config_loader import AppConfig
from consensus.providers.anthropic import AnthropicProvider
from consensus.providers.base import AIProvider, ProviderError, ProviderNotConfiguredError
from consensus.providers.gemini import GeminiProvider
from consensus.providers.openai_provider import OpenAIProvider
from consensus.providers.xai import XAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "google": GeminiProvider,
    "xai": XAIProvider,
}


def build_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build a provider for every configured model, keyed by model id.

    Providers are built even without an API key; they report
    is_configured() False and the debate skips them.
    """
    providers: dict[str, AIProvider] = {}
    for model_id, model_cfg in config.models.items():
        cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if cls is None:
            logger.warning("Model '%s' uses unknown sdk '%s', skipping", model_id, model_cfg.sdk)
            continue
        try:
            providers[model_id] = cls(model_cfg)
        except ProviderError as exc:
            logger.warning("Failed to instantiate provider '%s': %s", model_id, exc)
    return providers


__all__ = [
    "AIProvider",
    "PROVIDER_CLASSES",
    "ProviderError",
    "ProviderNotConfiguredError",
    "build_providers",
]
