"""Tests for consensus/events.py."""

import asyncio
import json

import pytest

from consensus.events import (
    AGREEMENT_DETECTED,
    DEBATE_ERROR,
    MODEL_START,
    EventStream,
    QueueSink,
    SinkClosed,
    format_sse,
)
from consensus.models import Consensus, CostSnapshot
from tests.conftest import RecordingSink, make_participant


def _fixed_clock() -> float:
    return 1700000000.5


async def test_every_event_has_type_timestamp_and_session_id():
    sink = RecordingSink()
    stream = EventStream("debate_1", sink, clock=_fixed_clock)
    await stream.debate_start()
    await stream.model_start(make_participant("alpha"), turn_number=0)

    for event in sink.events:
        assert event["sessionId"] == "debate_1"
        assert event["timestamp"] == 1700000000500
    assert sink.events[1]["type"] == MODEL_START
    assert sink.events[1]["modelId"] == "alpha"
    assert sink.events[1]["modelDisplayName"] == "ALPHA"
    assert sink.events[1]["turnNumber"] == 0


async def test_agreement_and_error_payloads():
    sink = RecordingSink()
    stream = EventStream("debate_1", sink)
    await stream.agreement_detected("Both models expressed agreement")
    await stream.error("MODEL_ERROR", "boom")

    agreement, error = sink.events
    assert agreement["type"] == AGREEMENT_DETECTED
    assert agreement["agreementDetected"] is True
    assert agreement["agreementReason"] == "Both models expressed agreement"
    assert error["type"] == DEBATE_ERROR
    assert error["error"] == {"code": "MODEL_ERROR", "message": "boom"}


async def test_complete_event_carries_consensus_and_cost():
    sink = RecordingSink()
    stream = EventStream("debate_1", sink)
    await stream.debate_complete(Consensus(summary="Ship it"), CostSnapshot())
    event = sink.events[0]
    assert event["consensus"]["summary"] == "Ship it"
    assert event["cost"]["totalCost"] == 0.0


async def test_close_is_idempotent_and_drops_later_events():
    sink = RecordingSink()
    stream = EventStream("debate_1", sink)
    await stream.close()
    await stream.close()
    await stream.debate_start()
    assert sink.closed
    assert sink.events == []


async def test_disconnected_sink_is_dropped_silently():
    class GoneSink(RecordingSink):
        async def send(self, event):
            raise SinkClosed("gone")

    stream = EventStream("debate_1", GoneSink())
    await stream.debate_start()
    assert stream.disconnected
    # later writes do not raise either
    await stream.synthesis_start()


def test_format_sse_frame():
    frame = format_sse({"type": "debate_start", "sessionId": "s"})
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert json.loads(frame[len("data: "):]) == {"type": "debate_start", "sessionId": "s"}


async def test_queue_sink_delivers_in_order_then_ends():
    sink = QueueSink()
    await sink.send({"n": 1})
    await sink.send({"n": 2})
    await sink.close()
    received = [event async for event in sink]
    assert received == [{"n": 1}, {"n": 2}]


async def test_queue_sink_send_after_close_raises():
    sink = QueueSink()
    await sink.close()
    with pytest.raises(SinkClosed):
        await sink.send({"n": 1})


async def test_queue_sink_disconnect_drops_pending_and_rejects_sends():
    sink = QueueSink()
    await sink.send({"n": 1})
    sink.disconnect()
    assert sink.disconnected
    with pytest.raises(SinkClosed):
        await sink.send({"n": 2})


async def test_queue_sink_applies_backpressure():
    sink = QueueSink(maxsize=1)
    await sink.send({"n": 1})
    blocked = asyncio.ensure_future(sink.send({"n": 2}))
    await asyncio.sleep(0.01)
    assert not blocked.done()

    iterator = sink.__aiter__()
    assert await iterator.__anext__() == {"n": 1}
    await asyncio.wait_for(blocked, timeout=1.0)
    assert await iterator.__anext__() == {"n": 2}
