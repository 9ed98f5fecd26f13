"""Provider health checks: ping each configured API before starting a debate."""

import asyncio
import logging

from consensus.models import GenerationOptions, Message
from consensus.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_MESSAGES: list[Message] = [{"role": "user", "content": "Reply with the word OK only."}]
_PING_OPTIONS = GenerationOptions(max_tokens=16, temperature=0.0)
_TIMEOUT_SEC = 15.0


async def _drain(provider: AIProvider) -> None:
    async for _ in provider.stream(_PING_MESSAGES, _PING_OPTIONS):
        pass


async def _check_one(name: str, provider: AIProvider) -> tuple[str, bool, str]:
    """Ping a single provider. Returns (name, ok, error_message)."""
    if not provider.is_configured():
        return name, False, "not configured"
    try:
        await asyncio.wait_for(_drain(provider), timeout=_TIMEOUT_SEC)
        return name, True, ""
    except TimeoutError:
        return name, False, f"timed out after {_TIMEOUT_SEC}s"
    except Exception as exc:
        logger.debug("Health check for %s failed", name, exc_info=True)
        return name, False, str(exc)


async def run_health_checks(
    providers: dict[str, AIProvider],
) -> dict[str, tuple[bool, str]]:
    """Ping all providers in parallel.

    Returns:
        Dict mapping provider name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, p) for n, p in providers.items()))
    return {name: (ok, err) for name, ok, err in results}
