"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, ModelConfig, PanelSeat, PromptsConfig, load_config


def _settings(**overrides) -> dict:
    settings = {
        "defaults": {
            "max_rounds": 3,
            "output_dir": "./output",
            "default_panel": [
                {"model": "claude", "role": "strategic-architect"},
                {"model": "gpt", "role": "implementation-specialist"},
            ],
        },
        "models": {
            "claude": {
                "display_name": "Claude",
                "sdk": "anthropic",
                "model": "claude-opus-4-1",
                "api_key_env": "TEST_CLAUDE_KEY",
                "timeout_sec": 120,
                "max_tokens": 8192,
                "pricing": {"input_per_1k": 0.015, "output_per_1k": 0.075},
            },
            "gpt": {
                "sdk": "openai",
                "model": "gpt-5",
                "api_key_env": "TEST_OPENAI_KEY",
                "timeout_sec": 120,
                "max_tokens": 8192,
            },
        },
        "prompts": {
            "initial": "{app_context}Q: {question}\n{style}",
            "other_model": "{name} ({role}): {content}",
            "review": "Reply to {names}.",
            "synthesis": "Q: {question}\n{full_transcript}",
        },
        "styles": {"cooperative": "Be kind."},
        "personas": {"strategic-architect": "You are a Strategic Architect."},
    }
    settings.update(overrides)
    return settings


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(_settings()), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.max_rounds == 3
    assert isinstance(config.defaults.output_dir, Path)
    assert config.defaults.style == "cooperative"
    assert config.defaults.session_timeout_sec == 300.0
    assert config.defaults.cancel_on_disconnect is False
    assert config.defaults.initial.max_tokens == 4096
    assert config.defaults.review.max_tokens == 3072
    assert config.defaults.synthesis.temperature == 0.5


def test_load_config_default_panel(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.default_panel == [
        PanelSeat("claude", "strategic-architect"),
        PanelSeat("gpt", "implementation-specialist"),
    ]


def test_load_config_models_and_pricing(minimal_settings):
    config = load_config(minimal_settings)
    claude = config.models["claude"]
    assert isinstance(claude, ModelConfig)
    assert claude.display_name == "Claude"
    assert claude.pricing.input_per_1k == 0.015
    assert claude.base_url is None
    # display_name and pricing are optional
    assert config.models["gpt"].display_name == "gpt"
    assert config.models["gpt"].pricing.output_per_1k == 0.0


def test_load_config_prompts(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config.prompts, PromptsConfig)
    assert "{question}" in config.prompts.initial
    assert config.prompts.app_context == "{files}"
    assert config.prompts.styles == {"cooperative": "Be kind."}
    assert "Strategic Architect" in config.prompts.personas["strategic-architect"]


def test_generation_overrides(tmp_path: Path):
    raw = _settings()
    raw["defaults"]["generation"] = {"synthesis": {"temperature": 0.2}}
    raw["defaults"]["cancel_on_disconnect"] = True
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(raw), encoding="utf-8")

    config = load_config(path)
    assert config.defaults.synthesis.temperature == 0.2
    assert config.defaults.synthesis.max_tokens == 4096
    assert config.defaults.cancel_on_disconnect is True


def test_load_config_available_providers_with_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test-key")
    monkeypatch.delenv("TEST_OPENAI_KEY", raising=False)
    config = load_config(minimal_settings)
    assert config.available_providers == {"claude"}


def test_load_config_no_available_providers_without_key(minimal_settings, monkeypatch):
    monkeypatch.delenv("TEST_CLAUDE_KEY", raising=False)
    monkeypatch.delenv("TEST_OPENAI_KEY", raising=False)
    config = load_config(minimal_settings)
    assert config.available_providers == set()


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_default_panel_must_reference_known_models(tmp_path: Path):
    raw = _settings()
    raw["defaults"]["default_panel"].append({"model": "mystery", "role": "proposer"})
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(raw), encoding="utf-8")
    with pytest.raises(ValueError, match="mystery"):
        load_config(path)


def test_shipped_settings_load():
    config = load_config()
    assert len(config.defaults.default_panel) >= 2
    assert set(config.prompts.styles) == {"cooperative", "adversarial"}
    assert len(config.prompts.personas) == 10
    for model in config.models.values():
        assert model.sdk in {"anthropic", "openai", "google", "xai"}
