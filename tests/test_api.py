"""
Tests for the manual QA FastAPI routes.
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from conftest import StubRetriever, build_test_pipeline, make_candidates, make_chunks
from manualqa.api.main import app
from manualqa.errors import RetrievalError
from manualqa.rag import EmbeddingClient, HybridRetriever

client = TestClient(app)


@pytest.fixture
def pipeline(monkeypatch):
    chunks = make_chunks(4)
    p = build_test_pipeline(make_candidates(chunks, top=0.8), chunks)
    monkeypatch.setattr(app.state, "pipeline", p, raising=False)
    return p


@pytest.fixture
def no_pipeline(monkeypatch):
    monkeypatch.setattr(app.state, "pipeline", None, raising=False)


def _parse_sse(text: str) -> list[tuple[str, dict]]:
    events = []
    for block in text.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


def test_health_without_pipeline(no_pipeline):
    r = client.get("/api/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "degraded"
    assert isinstance(data["chunks_loaded"], int)


def test_health_with_pipeline(pipeline):
    r = client.get("/api/health")
    assert r.json()["status"] == "ok"


def test_chat_requires_body():
    r = client.post("/api/chat", json={})
    assert r.status_code == 422


def test_chat_unavailable_without_pipeline(no_pipeline):
    r = client.post("/api/chat", json={"query": "Where is the battery?"})
    assert r.status_code == 503
    assert "detail" in r.json()


def test_chat_returns_answer_and_citations(pipeline):
    r = client.post("/api/chat", json={"query": "Where is the battery?", "manual_id": "board-a"})
    assert r.status_code == 200
    data = r.json()
    assert data["answer"].startswith("**Answer:**")
    assert data["citations"][0] == "board-a:p10"
    assert data["strategy"] == "vector"
    assert len(data["sources"]) == 4
    assert data["metadata"]["manual_id"] == "board-a"


def test_chat_retrieval_error_returns_500_body(monkeypatch):
    p = build_test_pipeline([], [], retriever=StubRetriever([], error=RetrievalError("embedding failed")))
    monkeypatch.setattr(app.state, "pipeline", p, raising=False)
    r = client.post("/api/chat", json={"query": "q"})
    assert r.status_code == 500
    assert r.json() == {"error": "embedding failed", "sources": [], "strategy": "error"}


def test_chat_stream_emits_sse_tokens_and_done(pipeline):
    r = client.post("/api/chat/stream", json={"query": "Where is the battery?"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    events = _parse_sse(r.text)
    assert [e for e, _ in events[:-1]] == ["token"] * 3
    assert "".join(d["token"] for _, d in events[:-1]) == "**Answer:** Replace the CR2032"
    kind, done = events[-1]
    assert kind == "done"
    assert done["citations"][0] == "board-a:p10"


def test_chat_stream_error_event(monkeypatch):
    p = build_test_pipeline([], [], retriever=StubRetriever([], error=RetrievalError("search timed out")))
    monkeypatch.setattr(app.state, "pipeline", p, raising=False)
    r = client.post("/api/chat/stream", json={"query": "q"})
    events = _parse_sse(r.text)
    assert events == [("error", {"error": "search timed out", "sources": [], "strategy": "error"})]


def test_search_returns_hits_without_generation(pipeline):
    r = client.post("/api/search", json={"query": "battery"})
    assert r.status_code == 200
    data = r.json()
    assert data["query"] == "battery"
    assert len(data["results"]) == 4
    assert data["rerank_fallback"] == "missing_credentials"


class _VectorClient:
    async def embed(self, texts, model):
        return [[1.0, 0.0] for _ in texts]


class _RefusingStore:
    async def similarity_search(self, embedding, **kwargs):
        raise ConnectionRefusedError(111, "Connect call failed ('127.0.0.1', 5432)")

    async def get_chunks(self, ids):
        return []


@pytest.fixture
def db_down(monkeypatch):
    retriever = HybridRetriever(embedder=EmbeddingClient(_VectorClient()), store=_RefusingStore())
    p = build_test_pipeline([], [], retriever=retriever)
    monkeypatch.setattr(app.state, "pipeline", p, raising=False)
    return p


def test_chat_database_down_returns_error_body(db_down):
    r = client.post("/api/chat", json={"query": "Where is the battery?"})
    assert r.status_code == 500
    data = r.json()
    assert data["sources"] == []
    assert data["strategy"] == "error"
    assert "vector search failed" in data["error"]


def test_chat_stream_database_down_emits_error_event(db_down):
    r = client.post("/api/chat/stream", json={"query": "Where is the battery?"})
    events = _parse_sse(r.text)
    assert len(events) == 1
    kind, data = events[0]
    assert kind == "error"
    assert data["strategy"] == "error"


def test_stream_route_is_registered_without_response_model():
    route = next(r for r in app.routes if getattr(r, "path", None) == "/api/chat/stream")
    assert route.response_model is None
