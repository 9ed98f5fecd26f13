"""Ordered session events and the sinks that carry them to a client.

Events are plain dicts with camelCase keys, ready for json.dumps. Every
event carries `type`, `timestamp` (epoch milliseconds) and `sessionId`.
"""

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol

from consensus.models import Consensus, CostSnapshot, Participant

logger = logging.getLogger(__name__)

DEBATE_START = "debate_start"
MODEL_START = "model_start"
MODEL_CHUNK = "model_chunk"
MODEL_COMPLETE = "model_complete"
AGREEMENT_DETECTED = "agreement_detected"
SYNTHESIS_START = "synthesis_start"
SYNTHESIS_COMPLETE = "synthesis_complete"
COST_UPDATE = "cost_update"
DEBATE_COMPLETE = "debate_complete"
DEBATE_ERROR = "debate_error"

PROVIDER_NOT_CONFIGURED = "PROVIDER_NOT_CONFIGURED"
MODEL_ERROR = "MODEL_ERROR"
FATAL_ERROR = "FATAL_ERROR"
SESSION_TIMEOUT = "SESSION_TIMEOUT"


class SinkClosed(Exception):
    """Raised by a sink whose client has gone away."""


class EventSink(Protocol):
    @property
    def disconnected(self) -> bool: ...

    async def send(self, event: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


def format_sse(event: dict[str, Any]) -> str:
    """Frame one event as a Server-Sent Events message."""
    return f"data: {json.dumps(event)}\n\n"


_END = object()


class QueueSink:
    """Bounded queue between a session task and an HTTP response.

    send() waits while the queue is full, so a slow client slows the
    producer down. disconnect() is called by the consumer when the client
    goes away: pending events are dropped and later sends raise SinkClosed.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._disconnected = False

    @property
    def disconnected(self) -> bool:
        return self._disconnected

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: dict[str, Any]) -> None:
        if self._disconnected:
            raise SinkClosed("client disconnected")
        if self._closed:
            raise SinkClosed("sink already closed")
        await self._queue.put(event)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._disconnected:
            await self._queue.put(_END)

    def disconnect(self) -> None:
        self._disconnected = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item


class EventStream:
    """Serializes one session's state transitions onto a sink.

    Once the sink reports the client gone, every later write is dropped
    without error and the session carries on.
    """

    def __init__(self, session_id: str, sink: EventSink, clock: Callable[[], float] = time.time) -> None:
        self.session_id = session_id
        self._sink = sink
        self._clock = clock
        self._disconnected = False
        self._closed = False

    @property
    def disconnected(self) -> bool:
        return self._disconnected or self._sink.disconnected

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event_type: str, **fields: Any) -> dict[str, Any]:
        event = {
            "type": event_type,
            "timestamp": int(self._clock() * 1000),
            "sessionId": self.session_id,
            **fields,
        }
        if self._closed or self.disconnected:
            logger.debug("Dropping %s for %s: stream closed", event_type, self.session_id)
            return event
        try:
            await self._sink.send(event)
        except (SinkClosed, ConnectionError) as exc:
            self._disconnected = True
            logger.info("Client for session %s went away (%s), dropping further events", self.session_id, exc)
        return event

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._sink.close()
        except (SinkClosed, ConnectionError) as exc:
            logger.debug("Sink for %s already gone on close: %s", self.session_id, exc)

    # -- typed helpers ----------------------------------------------------

    async def debate_start(self) -> dict[str, Any]:
        return await self.emit(DEBATE_START)

    async def model_start(self, participant: Participant, turn_number: int) -> dict[str, Any]:
        return await self.emit(
            MODEL_START,
            modelId=participant.model_id,
            modelDisplayName=participant.display_name,
            turnNumber=turn_number,
        )

    async def model_chunk(self, participant: Participant, content: str) -> dict[str, Any]:
        return await self.emit(MODEL_CHUNK, modelId=participant.model_id, content=content)

    async def model_complete(self, participant: Participant, turn_number: int) -> dict[str, Any]:
        return await self.emit(MODEL_COMPLETE, modelId=participant.model_id, turnNumber=turn_number)

    async def agreement_detected(self, reason: str) -> dict[str, Any]:
        return await self.emit(AGREEMENT_DETECTED, agreementDetected=True, agreementReason=reason)

    async def synthesis_start(self) -> dict[str, Any]:
        return await self.emit(SYNTHESIS_START)

    async def synthesis_complete(self, consensus: Consensus) -> dict[str, Any]:
        return await self.emit(SYNTHESIS_COMPLETE, consensus=consensus.to_dict())

    async def cost_update(self, cost: CostSnapshot) -> dict[str, Any]:
        return await self.emit(COST_UPDATE, cost=cost.to_dict())

    async def debate_complete(self, consensus: Consensus, cost: CostSnapshot) -> dict[str, Any]:
        return await self.emit(DEBATE_COMPLETE, consensus=consensus.to_dict(), cost=cost.to_dict())

    async def error(self, code: str, message: str) -> dict[str, Any]:
        return await self.emit(DEBATE_ERROR, error={"code": code, "message": message})
