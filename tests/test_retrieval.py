"""
Tests for term extraction, query expansion, embedding and vector retrieval.
"""

from __future__ import annotations

import asyncio
from typing import List

import httpx
import openai
import pytest

from manualqa.errors import RetrievalError
from manualqa.rag import (
    ChunkRecord,
    EmbeddingClient,
    HybridRetriever,
    InMemoryChunkStore,
    RegexTermExtractor,
    RetrievalConfig,
)
from manualqa.rag.terms import expand_query, keyword_line, normalize_query


class _StubEmbedClient:
    """Returns a fixed vector and records what was embedded."""

    def __init__(self, vector: List[float]):
        self.vector = vector
        self.calls: List[List[str]] = []

    async def embed(self, texts: List[str], model: str) -> List[List[float]]:
        self.calls.append(list(texts))
        return [list(self.vector) for _ in texts]


class _FailingEmbedClient:
    async def embed(self, texts: List[str], model: str) -> List[List[float]]:
        raise openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/embeddings"))


class _ShortEmbedClient:
    async def embed(self, texts: List[str], model: str) -> List[List[float]]:
        return []


def _chunk(cid: str, embedding: List[float], manual_id: str = "m1", tenant_id=None) -> ChunkRecord:
    return ChunkRecord(
        id=cid,
        manual_id=manual_id,
        version="v1",
        page_start=1,
        page_end=1,
        content=f"content of {cid}",
        embedding=embedding,
        tenant_id=tenant_id,
    )


# --- Term extraction ---


def test_extracts_technical_tokens_in_order_without_duplicates():
    ex = RegexTermExtractor()
    tokens = ex.extract("Replace the CR2032 near J12; check cr2032 and 12V at pin 3, error E-27")
    assert tokens[0] == "CR2032"
    assert "J12" in tokens
    assert "12V" in tokens
    assert "pin 3" in tokens
    assert "error E-27" in tokens
    assert [t.lower() for t in tokens].count("cr2032") == 1


def test_keyword_line_empty_without_terms():
    ex = RegexTermExtractor()
    assert keyword_line("how do I clean the glass", ex) == ""
    assert not ex.contains_technical_term("how do I clean the glass")
    assert ex.contains_technical_term("HDMI output is blank")


def test_normalize_query_collapses_whitespace_and_quotes():
    assert normalize_query("  won’t   start \n") == "won't start"


def test_expand_query_appends_synonyms_for_ball_symptom():
    expanded = expand_query("The balls won't come out")
    assert expanded.startswith("The balls won't come out\nSynonyms: ")
    assert "ball gate" in expanded
    assert expand_query("screen is dark") == "screen is dark"


# --- Embedding client ---


@pytest.mark.anyio
async def test_embed_many_batches_in_order():
    stub = _StubEmbedClient([1.0, 0.0])
    embedder = EmbeddingClient(stub)
    vectors = await embedder.embed_many(["a", "b", "c"], batch_size=2)
    assert len(vectors) == 3
    assert stub.calls == [["a", "b"], ["c"]]


@pytest.mark.anyio
async def test_embed_failure_raises_retrieval_error():
    embedder = EmbeddingClient(_FailingEmbedClient())
    with pytest.raises(RetrievalError):
        await embedder.embed("hello")


@pytest.mark.anyio
async def test_embed_count_mismatch_raises_retrieval_error():
    embedder = EmbeddingClient(_ShortEmbedClient())
    with pytest.raises(RetrievalError):
        await embedder.embed("hello")


# --- In-memory store and retriever ---


@pytest.mark.anyio
async def test_in_memory_store_orders_filters_and_thresholds():
    store = InMemoryChunkStore(
        [
            _chunk("close", [1.0, 0.1]),
            _chunk("exact", [1.0, 0.0]),
            _chunk("other_manual", [1.0, 0.0], manual_id="m2"),
            _chunk("orthogonal", [0.0, 1.0]),
        ]
    )
    results = await store.similarity_search([1.0, 0.0], top_k=10, min_score=0.3, manual_id="m1")
    assert [c.id for c in results] == ["exact", "close"]
    assert results[0].score == pytest.approx(1.0)


@pytest.mark.anyio
async def test_in_memory_store_tenant_filter():
    store = InMemoryChunkStore(
        [_chunk("a", [1.0, 0.0], tenant_id="t1"), _chunk("b", [1.0, 0.0], tenant_id="t2")]
    )
    results = await store.similarity_search([1.0, 0.0], top_k=10, min_score=0.0, tenant_id="t2")
    assert [c.id for c in results] == ["b"]


@pytest.mark.anyio
async def test_retriever_appends_keyword_line_before_embedding():
    stub = _StubEmbedClient([1.0, 0.0])
    store = InMemoryChunkStore([_chunk("a", [1.0, 0.0])])
    retriever = HybridRetriever(embedder=EmbeddingClient(stub), store=store)
    result = await retriever.search("Where is the CR2032 battery?")
    assert stub.calls == [["Where is the CR2032 battery?\nKeywords: CR2032"]]
    assert result.keywords == ["CR2032"]
    assert result.strategy == "vector"
    assert [c.id for c in result.candidates] == ["a"]


@pytest.mark.anyio
async def test_retriever_strategy_none_when_nothing_matches():
    stub = _StubEmbedClient([0.0, 1.0])
    store = InMemoryChunkStore([_chunk("a", [1.0, 0.0])])
    retriever = HybridRetriever(
        embedder=EmbeddingClient(stub), store=store, config=RetrievalConfig(min_score=0.3)
    )
    result = await retriever.search("how do I clean it")
    assert result.candidates == []
    assert result.strategy == "none"


@pytest.mark.anyio
async def test_retriever_propagates_embedding_failure():
    store = InMemoryChunkStore([_chunk("a", [1.0, 0.0])])
    retriever = HybridRetriever(embedder=EmbeddingClient(_FailingEmbedClient()), store=store)
    with pytest.raises(RetrievalError):
        await retriever.search("anything")


@pytest.mark.anyio
async def test_retriever_times_out_slow_store():
    class _SlowStore:
        async def similarity_search(self, embedding, **kwargs):
            await asyncio.sleep(1)
            return []

        async def get_chunks(self, ids):
            return []

    retriever = HybridRetriever(
        embedder=EmbeddingClient(_StubEmbedClient([1.0])), store=_SlowStore(), timeout_s=0.01
    )
    with pytest.raises(RetrievalError):
        await retriever.search("anything")


class _DownStore:
    def __init__(self, exc: Exception):
        self.exc = exc

    async def similarity_search(self, embedding, **kwargs):
        raise self.exc

    async def get_chunks(self, ids):
        return []


@pytest.mark.anyio
@pytest.mark.parametrize(
    "exc",
    [ConnectionRefusedError("connection refused"), ValueError("shapes (1,3) and (2,) not aligned")],
)
async def test_retriever_wraps_store_failures(exc):
    retriever = HybridRetriever(embedder=EmbeddingClient(_StubEmbedClient([1.0, 0.0])), store=_DownStore(exc))
    with pytest.raises(RetrievalError) as info:
        await retriever.search("anything")
    assert info.value.__cause__ is exc


def test_page_references_are_not_connector_labels():
    ex = RegexTermExtractor()
    assert ex.extract("see p12 and p3 for details") == []
    assert not ex.contains_technical_term("as shown on p12")
    assert ex.extract("unplug P12 and J3") == ["P12", "J3"]
