"""Tests for consensus/service.py."""

import asyncio

import pytest

from consensus.events import DEBATE_COMPLETE, DEBATE_ERROR
from consensus.models import SessionStatus
from consensus.requests import EndDebateRequest, InvalidRequest, StartDebateRequest
from consensus.service import DebateService, UnknownSession
from tests.conftest import MockProvider, RecordingSink


@pytest.fixture
def providers() -> dict[str, MockProvider]:
    return {
        "alpha": MockProvider("alpha", "Use REST."),
        "beta": MockProvider("beta", "Use GraphQL."),
        "gamma": MockProvider("gamma", "Use gRPC."),
    }


@pytest.fixture
def service(sample_app_config, providers) -> DebateService:
    return DebateService(sample_app_config, providers=providers)


def _start(**fields) -> StartDebateRequest:
    return StartDebateRequest.model_validate({"appId": "app_1", "userQuestion": "REST or GraphQL?", **fields})


def test_default_panel(service):
    participants = service.build_participants(None)
    assert [(p.model_id, p.role) for p in participants] == [
        ("alpha", "strategic-architect"),
        ("beta", "implementation-specialist"),
    ]
    assert participants[0].system_prompt == "You are a Strategic Architect."
    assert participants[0].display_name == "ALPHA"


def test_custom_panel_roles(service):
    request = _start(participants=[
        {"modelId": "gamma", "role": "security-analyst"},
        {"modelId": "beta"},
        {"modelId": "alpha", "role": "proposer"},
    ])
    participants = service.build_participants(request.participants)
    assert [(p.model_id, p.role) for p in participants] == [
        ("gamma", "security-analyst"),
        ("beta", "implementation-specialist"),
        ("alpha", "proposer"),
    ]
    # no persona configured for this role
    assert participants[0].system_prompt == ""


def test_unknown_model_rejected(service):
    request = _start(participants=[{"modelId": "alpha"}, {"modelId": "omega"}])
    with pytest.raises(InvalidRequest, match="Unknown model: omega"):
        service.build_participants(request.participants)


def test_duplicate_model_rejected(service):
    request = _start(participants=[{"modelId": "alpha"}, {"modelId": "alpha"}])
    with pytest.raises(InvalidRequest, match="only one seat"):
        service.build_participants(request.participants)


def test_settings_from_request_and_config(service):
    request = _start(
        maxRounds=2,
        style="adversarial",
        currentAppState={"name": "Shop", "files": [{"path": "app.py", "content": "print('hi')"}]},
    )
    settings = service.build_settings(request)
    assert settings.max_rounds == 2
    assert settings.style == "adversarial"
    assert "app.py" in settings.app_context
    assert settings.synthesis.temperature == 0.5
    assert settings.review.max_tokens == 3072
    assert settings.timeout_sec == 30.0
    assert settings.cancel_on_disconnect is False


def test_style_defaults_from_config(service):
    assert service.build_settings(_start()).style == "cooperative"


async def test_run_to_completion(service, providers):
    sink = RecordingSink()
    session = await service.run(_start(maxRounds=2), sink)

    assert session.id.startswith("debate_")
    assert session.status == SessionStatus.COMPLETED
    assert sink.types()[-1] == DEBATE_COMPLETE
    assert all(e["sessionId"] == session.id for e in sink.events)
    assert service.active_sessions() == []
    # alpha priced at 0.01 / 0.03 per 1k, so cost is non-zero
    assert sink.events[-1]["cost"]["totalCost"] > 0


async def test_run_rejects_bad_panel(service):
    sink = RecordingSink()
    with pytest.raises(InvalidRequest):
        await service.run(_start(participants=[{"modelId": "alpha"}, {"modelId": "omega"}]), sink)
    (event,) = sink.events
    assert event["type"] == DEBATE_ERROR
    assert event["error"]["code"] == "FATAL_ERROR"
    assert sink.closed


async def test_start_end_and_interject(sample_app_config):
    gate = asyncio.Event()

    class GatedProvider(MockProvider):
        async def stream(self, messages, options):
            await gate.wait()
            async for chunk in super().stream(messages, options):
                yield chunk

    providers = {"alpha": GatedProvider("alpha", "Use REST."), "beta": MockProvider("beta", "Use gRPC.")}
    service = DebateService(sample_app_config, providers=providers)
    sink = RecordingSink()

    controller = service.start(_start(maxRounds=3), sink)
    session_id = controller.session.id
    await asyncio.sleep(0)
    assert service.get(session_id) is controller

    interjection = service.create_interjection(session_id, "Think about cost", "steer")
    assert [i.id for i in service.list_pending(session_id)] == [interjection.id]

    service.end(EndDebateRequest(kind="end", sessionId=session_id, reason="user-ended"))
    gate.set()
    for _ in range(100):
        if not service.active_sessions():
            break
        await asyncio.sleep(0.01)

    assert controller.session.status == SessionStatus.USER_ENDED
    assert service.active_sessions() == []
    assert service.list_pending(session_id) == []


def test_end_unknown_session(service):
    with pytest.raises(UnknownSession):
        service.end(EndDebateRequest(kind="end", sessionId="debate_missing", reason="agreed"))


async def test_shutdown_cancels_running_debates(sample_app_config):
    providers = {
        "alpha": MockProvider("alpha", "Use REST.", delay=10.0),
        "beta": MockProvider("beta", "Use gRPC."),
    }
    service = DebateService(sample_app_config, providers=providers)
    service.start(_start(), RecordingSink())
    await asyncio.sleep(0)
    await service.shutdown()
    assert service.active_sessions() == []
