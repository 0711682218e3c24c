"""
API routes: chat, streamed chat, search, health.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from manualqa.errors import ManualQAError
from manualqa.orchestrator import AnswerPipeline, QueryRequest, SourceRef

from .models import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HealthResponse,
    SearchRequest,
    SearchResponse,
    SourceOut,
    ThumbnailOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

UNAVAILABLE = {"detail": "Service unavailable: pipeline not initialized."}


def _sse_event(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


def _get_pipeline(request: Request) -> Optional[AnswerPipeline]:
    return getattr(request.app.state, "pipeline", None)


def _error_body(exc: ManualQAError) -> dict[str, Any]:
    return ErrorResponse(error=str(exc) or exc.kind).model_dump()


def _query(body: Any) -> QueryRequest:
    return QueryRequest(query=body.query, manual_id=body.manual_id, tenant_id=body.tenant_id)


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Health check, including which external services are configured."""
    state = request.app.state
    return HealthResponse(
        status="ok" if _get_pipeline(request) is not None else "degraded",
        backend=getattr(state, "backend", "none"),
        chunks_loaded=getattr(state, "chunks_loaded", 0),
        configured=getattr(state, "configured", {}),
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(request: Request, body: ChatRequest) -> ChatResponse | JSONResponse:
    """Answer a question from the manuals, with page citations and figure thumbnails."""
    pipeline = _get_pipeline(request)
    if pipeline is None:
        return JSONResponse(status_code=503, content=UNAVAILABLE)
    try:
        resp = await pipeline.answer(_query(body))
    except ManualQAError as exc:
        logger.error("Chat request failed (%s): %s", exc.kind, exc)
        return JSONResponse(status_code=500, content=_error_body(exc))
    return ChatResponse(
        answer=resp.answer,
        citations=resp.citations,
        thumbnails=[ThumbnailOut(**asdict(t)) for t in resp.thumbnails],
        sources=[SourceOut(**asdict(s)) for s in resp.sources],
        strategy=resp.strategy,
        gate_reason=resp.gate_reason,
        metadata=resp.metadata,
    )


async def _stream_chat(pipeline: AnswerPipeline, query: QueryRequest):
    events = pipeline.stream(query)
    try:
        async for ev in events:
            if ev.event == "token":
                yield _sse_event("token", json.dumps({"token": ev.data}))
            else:
                yield _sse_event(ev.event, json.dumps(ev.data))
    except ManualQAError as exc:
        logger.error("Streamed chat failed (%s): %s", exc.kind, exc)
        yield _sse_event("error", json.dumps(_error_body(exc)))
    finally:
        await events.aclose()


@router.post("/chat/stream", response_model=None)
async def chat_stream(request: Request, body: ChatRequest) -> StreamingResponse | JSONResponse:
    """Stream answer tokens via SSE; the final `done` event has citations, thumbnails and metadata."""
    pipeline = _get_pipeline(request)
    if pipeline is None:
        return JSONResponse(status_code=503, content=UNAVAILABLE)
    return StreamingResponse(
        _stream_chat(pipeline, _query(body)),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/search", response_model=SearchResponse)
async def search_endpoint(request: Request, body: SearchRequest) -> SearchResponse | JSONResponse:
    """Retrieve, rerank and diversify without generating an answer."""
    pipeline = _get_pipeline(request)
    if pipeline is None:
        return JSONResponse(status_code=503, content=UNAVAILABLE)
    try:
        ctx = await pipeline.search(_query(body))
    except ManualQAError as exc:
        logger.error("Search request failed (%s): %s", exc.kind, exc)
        return JSONResponse(status_code=500, content=_error_body(exc))
    return SearchResponse(
        query=body.query,
        strategy=ctx.strategy,
        results=[SourceOut(**asdict(SourceRef.from_candidate(c))) for c in ctx.selected],
        rerank_fallback=ctx.rerank_fallback,
    )
