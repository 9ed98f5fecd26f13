"""Unit tests for consensus/healthcheck.py -- no real API calls."""

import consensus.healthcheck as healthcheck
from consensus.healthcheck import run_health_checks
from consensus.providers.base import ProviderError
from tests.conftest import MockProvider


async def test_all_providers_pass():
    providers = {"claude": MockProvider("claude", "OK"), "gemini": MockProvider("gemini", "OK")}

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    assert results["gemini"] == (True, "")


async def test_ping_is_small_and_deterministic():
    provider = MockProvider("claude", "OK")
    await run_health_checks({"claude": provider})
    [(messages, options)] = provider.calls
    assert messages[0]["role"] == "user"
    assert options.max_tokens == 16
    assert options.temperature == 0.0


async def test_one_provider_fails():
    providers = {
        "claude": MockProvider("claude", "OK"),
        "grok": MockProvider("grok", ProviderError("grok", "401 Unauthorized")),
    }

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    ok, err = results["grok"]
    assert ok is False
    assert "401 Unauthorized" in err


async def test_unconfigured_provider_is_not_pinged():
    provider = MockProvider("gemini", configured=False)
    results = await run_health_checks({"gemini": provider})
    assert results["gemini"] == (False, "not configured")
    assert provider.calls == []


async def test_slow_provider_times_out(monkeypatch):
    monkeypatch.setattr(healthcheck, "_TIMEOUT_SEC", 0.05)
    results = await run_health_checks({"slow": MockProvider("slow", "OK", delay=1.0)})
    ok, err = results["slow"]
    assert ok is False
    assert "timed out" in err


async def test_empty_providers():
    assert await run_health_checks({}) == {}
