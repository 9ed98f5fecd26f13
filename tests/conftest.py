"""Shared pytest fixtures."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    ModelConfig,
    PanelSeat,
    Pricing,
    PromptsConfig,
)
from consensus.models import (
    DoneChunk,
    GenerationOptions,
    Message,
    Participant,
    StreamChunk,
    TextChunk,
)
from consensus.providers.base import AIProvider, ProviderNotConfiguredError


class MockProvider(AIProvider):
    """Scripted streaming provider.

    Each stream() call consumes the next scripted reply; the last reply
    repeats once the script runs out. A reply that is an Exception is
    raised after one partial chunk, like a connection dropped mid-stream.
    """

    def __init__(
        self,
        model_id: str = "mock",
        replies: list[str | BaseException] | str = "Mock response",
        configured: bool = True,
        tokens_used: int | None = 10,
        delay: float = 0.0,
    ) -> None:
        self._model_id = model_id
        self._replies = [replies] if isinstance(replies, (str, BaseException)) else list(replies)
        self._configured = configured
        self._tokens_used = tokens_used
        self._delay = delay
        self.calls: list[tuple[list[Message], GenerationOptions]] = []

    def name(self) -> str:
        return self._model_id

    def display_name(self) -> str:
        return self._model_id.upper()

    def model_string(self) -> str:
        return "mock-model"

    def is_configured(self) -> bool:
        return self._configured

    def _next_reply(self) -> str | BaseException:
        if len(self._replies) > 1:
            return self._replies.pop(0)
        return self._replies[0]

    async def stream(self, messages: list[Message], options: GenerationOptions) -> AsyncIterator[StreamChunk]:
        self.calls.append((list(messages), options))
        if not self._configured:
            raise ProviderNotConfiguredError(self._model_id, "Missing API key: MOCK_API_KEY")
        reply = self._next_reply()
        if self._delay:
            await asyncio.sleep(self._delay)
        if isinstance(reply, BaseException):
            yield TextChunk("partial ")
            raise reply
        for word in reply.split(" "):
            if word:
                yield TextChunk(word + " ")
        yield DoneChunk(tokens_used=self._tokens_used)


class RecordingSink:
    """EventSink that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self.closed = False
        self.disconnected = False

    async def send(self, event: dict[str, Any]) -> None:
        self.events.append(event)

    async def close(self) -> None:
        self.closed = True

    def types(self) -> list[str]:
        return [e["type"] for e in self.events]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [e for e in self.events if e["type"] == event_type]


def make_participant(model_id: str, role: str = "strategic-architect") -> Participant:
    return Participant(
        model_id=model_id,
        display_name=model_id.upper(),
        role=role,
        system_prompt=f"You are {model_id}.",
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        initial="{app_context}Question: {question}\n\n{style}Answer:",
        other_model="**{name}** ({role}) said:\n{content}",
        review="Respond to {names}.",
        synthesis="Question: {question}\n\nDiscussion:\n{full_transcript}\n\nSynthesize:",
        app_context="App: {name}\nFiles: {file_list}\n{files}",
        personas={
            "strategic-architect": "You are a Strategic Architect.",
            "implementation-specialist": "You are an Implementation Specialist.",
        },
        styles={"cooperative": "Work together.", "adversarial": "Challenge everything."},
    )


def _model(model_id: str, input_per_1k: float, output_per_1k: float) -> ModelConfig:
    return ModelConfig(
        name=model_id,
        display_name=model_id.upper(),
        sdk="openai",
        model=f"{model_id}-model",
        api_key_env=f"{model_id.upper().replace('-', '_')}_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        pricing=Pricing(input_per_1k=input_per_1k, output_per_1k=output_per_1k),
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        max_rounds=3,
        output_dir=tmp_path / "output",
        default_panel=[
            PanelSeat(model="alpha", role="strategic-architect"),
            PanelSeat(model="beta", role="implementation-specialist"),
        ],
        session_timeout_sec=30.0,
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    return AppConfig(
        defaults=sample_defaults_config,
        models={
            "alpha": _model("alpha", 0.01, 0.03),
            "beta": _model("beta", 0.002, 0.008),
            "gamma": _model("gamma", 0.001, 0.002),
        },
        prompts=sample_prompts_config,
        available_providers={"alpha", "beta", "gamma"},
    )


@pytest.fixture
def alpha() -> Participant:
    return make_participant("alpha", "strategic-architect")


@pytest.fixture
def beta() -> Participant:
    return make_participant("beta", "implementation-specialist")


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()
