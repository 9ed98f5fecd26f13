"""Load settings.yaml into typed dataclasses. Reports provider API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class Pricing:
    input_per_1k: float = 0.0
    output_per_1k: float = 0.0


@dataclass
class ModelConfig:
    name: str              # model id used on the wire, e.g. "claude-opus-4"
    display_name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    pricing: Pricing = field(default_factory=Pricing)
    base_url: str | None = None


@dataclass
class GenerationConfig:
    max_tokens: int
    temperature: float


@dataclass
class PanelSeat:
    model: str
    role: str


@dataclass
class PromptsConfig:
    initial: str
    other_model: str
    review: str
    synthesis: str
    app_context: str = "{files}"
    personas: dict[str, str] = field(default_factory=dict)
    styles: dict[str, str] = field(default_factory=dict)


@dataclass
class DefaultsConfig:
    max_rounds: int
    output_dir: Path
    default_panel: list[PanelSeat] = field(default_factory=list)
    style: str = "cooperative"
    session_timeout_sec: float = 300.0
    cancel_on_disconnect: bool = False
    interjection_ttl_sec: float = 3600.0
    initial: GenerationConfig = field(default_factory=lambda: GenerationConfig(4096, 0.7))
    review: GenerationConfig = field(default_factory=lambda: GenerationConfig(3072, 0.7))
    synthesis: GenerationConfig = field(default_factory=lambda: GenerationConfig(4096, 0.5))


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    available_providers: set[str] = field(default_factory=set)


def _generation(raw: dict | None, fallback: GenerationConfig) -> GenerationConfig:
    if not raw:
        return fallback
    return GenerationConfig(
        max_tokens=int(raw.get("max_tokens", fallback.max_tokens)),
        temperature=float(raw.get("temperature", fallback.temperature)),
    )


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs missing API keys but does not raise; those providers report
    themselves as not configured and are skipped during a debate.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    base = DefaultsConfig(max_rounds=3, output_dir=Path("./output"))
    generation_raw = defaults_raw.get("generation", {})
    defaults = DefaultsConfig(
        max_rounds=int(defaults_raw["max_rounds"]),
        output_dir=Path(defaults_raw["output_dir"]),
        default_panel=[
            PanelSeat(model=str(seat["model"]), role=str(seat["role"]))
            for seat in defaults_raw["default_panel"]
        ],
        style=str(defaults_raw.get("style", base.style)),
        session_timeout_sec=float(defaults_raw.get("session_timeout_sec", base.session_timeout_sec)),
        cancel_on_disconnect=bool(defaults_raw.get("cancel_on_disconnect", base.cancel_on_disconnect)),
        interjection_ttl_sec=float(defaults_raw.get("interjection_ttl_sec", base.interjection_ttl_sec)),
        initial=_generation(generation_raw.get("initial"), base.initial),
        review=_generation(generation_raw.get("review"), base.review),
        synthesis=_generation(generation_raw.get("synthesis"), base.synthesis),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        initial=prompts_raw["initial"],
        other_model=prompts_raw["other_model"],
        review=prompts_raw["review"],
        synthesis=prompts_raw["synthesis"],
        app_context=prompts_raw.get("app_context", "{files}"),
        personas={k: str(v) for k, v in raw.get("personas", {}).items()},
        styles={k: str(v) for k, v in raw.get("styles", {}).items()},
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for model_id, model_raw in raw["models"].items():
        pricing_raw = model_raw.get("pricing", {})
        model_cfg = ModelConfig(
            name=model_id,
            display_name=str(model_raw.get("display_name", model_id)),
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            pricing=Pricing(
                input_per_1k=float(pricing_raw.get("input_per_1k", 0.0)),
                output_per_1k=float(pricing_raw.get("output_per_1k", 0.0)),
            ),
            base_url=model_raw.get("base_url"),
        )
        models[model_id] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(model_id)
            logger.info("Provider available: %s", model_id)
        else:
            logger.info(
                "Provider not configured (no API key): %s, set %s in .env",
                model_id,
                model_raw["api_key_env"],
            )

    unknown = [seat.model for seat in defaults.default_panel if seat.model not in models]
    if unknown:
        raise ValueError(f"default_panel references unknown models: {', '.join(unknown)}")

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        available_providers=available_providers,
    )
