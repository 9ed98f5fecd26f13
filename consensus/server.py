"""FastAPI application exposing the debate stream and the interjection endpoints."""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse

from consensus.events import QueueSink, format_sse
from consensus.interjections import InterjectionError
from consensus.requests import (
    CreateInterjectionRequest,
    EndDebateRequest,
    InvalidRequest,
    parse_debate_request,
)
from consensus.service import DebateService, UnknownSession

logger = logging.getLogger(__name__)

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _sse_response(sink: QueueSink) -> StreamingResponse:
    async def event_stream() -> AsyncIterator[str]:
        try:
            async for event in sink:
                yield format_sse(event)
        finally:
            # Reached early when the client hangs up mid-stream.
            if not sink.closed:
                logger.info("Client disconnected before the debate finished")
                sink.disconnect()

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=_SSE_HEADERS)


def create_app(service: DebateService) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await service.shutdown()

    app = FastAPI(title="Consensus Debate Engine", lifespan=lifespan)
    app.state.service = service

    @app.post("/debate")
    async def debate(request: Request):
        """Start a debate (SSE stream) or end a running one (JSON)."""
        sink = QueueSink()
        try:
            body = await request.json()
            parsed = parse_debate_request(body)
        except (json.JSONDecodeError, InvalidRequest) as exc:
            await service.reject(sink, f"Malformed debate request: {exc}")
            return _sse_response(sink)

        if isinstance(parsed, EndDebateRequest):
            try:
                service.end(parsed)
            except UnknownSession:
                raise HTTPException(status_code=404, detail=f"No running debate {parsed.session_id}")
            return {"success": True, "sessionId": parsed.session_id, "reason": parsed.reason}

        try:
            service.start(parsed, sink)
        except InvalidRequest as exc:
            await service.reject(sink, str(exc))
        return _sse_response(sink)

    @app.post("/interject")
    async def create_interjection(req: CreateInterjectionRequest):
        try:
            interjection = service.create_interjection(
                req.session_id, req.content, req.kind, req.target_message_id
            )
        except InterjectionError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"success": True, "interjection": interjection.to_dict()}

    @app.get("/interject")
    async def list_interjections(sessionId: str):
        pending = service.list_pending(sessionId)
        return {
            "sessionId": sessionId,
            "interjections": [i.to_dict() for i in pending],
            "pending": len(pending),
        }

    @app.delete("/interject")
    async def clear_interjections(sessionId: str):
        service.clear_interjections(sessionId)
        return {"success": True, "message": f"Interjections cleared for session {sessionId}"}

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "activeSessions": len(service.active_sessions()),
            "providers": {name: p.is_configured() for name, p in service.providers.items()},
        }

    return app
