from __future__ import annotations

from typing import List, Optional

import httpx
import pytest

from manualqa.generation import AnswerGenerator, CitationBuilder
from manualqa.orchestrator import AnswerPipeline
from manualqa.rag import (
    Candidate,
    ChunkRecord,
    CohereReranker,
    FigureRecord,
    InMemoryChunkStore,
    InMemoryFigureStore,
    RerankConfig,
    RetrievalResult,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


class StubRetriever:
    def __init__(self, candidates: List[Candidate], error: Optional[Exception] = None):
        self.candidates = candidates
        self.error = error
        self.calls: List[tuple] = []

    async def search(self, query, manual_id=None, tenant_id=None) -> RetrievalResult:
        self.calls.append((query, manual_id, tenant_id))
        if self.error is not None:
            raise self.error
        return RetrievalResult(
            candidates=list(self.candidates),
            strategy="vector" if self.candidates else "none",
            expanded_query=query,
            search_query=query,
        )


class StubChatClient:
    model_name = "stub-model"

    def __init__(self, answer: str = "**Answer:** Replace the CR2032 battery (p12)", tokens=None, error=None):
        self.answer = answer
        self.tokens = tokens if tokens is not None else ["**Answer:** ", "Replace ", "the CR2032"]
        self.error = error
        self.calls = 0
        self.closed = False

    async def complete(self, system, user, max_tokens=350, temperature=0.2):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.answer

    async def stream(self, system, user, max_tokens=350, temperature=0.2):
        self.calls += 1
        try:
            for t in self.tokens:
                if self.error is not None:
                    raise self.error
                yield t
        finally:
            self.closed = True


def make_chunks(n: int, manual_id: str = "board-a") -> List[ChunkRecord]:
    return [
        ChunkRecord(
            id=f"{manual_id}@v1::chunk_{i:05d}",
            manual_id=manual_id,
            version="v1",
            page_start=10 + i,
            page_end=10 + i,
            content=f"Page {10 + i} topic{i} " + " ".join(f"w{i}x{j}" for j in range(60)),
        )
        for i in range(n)
    ]


def make_candidates(chunks: List[ChunkRecord], top: float, step: float = 0.02) -> List[Candidate]:
    return [Candidate(chunk=c, score=round(top - i * step, 4)) for i, c in enumerate(chunks)]


def scoring_reranker(scores: List[float]) -> CohereReranker:
    """Reranker whose service returns the given scores for the first len(scores) documents."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"results": [{"index": i, "relevance_score": s} for i, s in enumerate(scores)]},
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CohereReranker(api_key="test-key", config=RerankConfig(top_n=10), http_client=client)


def build_test_pipeline(
    candidates: List[Candidate],
    chunks: List[ChunkRecord],
    figures: Optional[List[FigureRecord]] = None,
    client: Optional[StubChatClient] = None,
    reranker: Optional[CohereReranker] = None,
    retriever: Optional[StubRetriever] = None,
    chunk_store=None,
) -> AnswerPipeline:
    return AnswerPipeline(
        retriever=retriever or StubRetriever(candidates),
        reranker=reranker or CohereReranker(api_key=None),
        generator=AnswerGenerator(client or StubChatClient()),
        citation_builder=CitationBuilder(
            chunk_store or InMemoryChunkStore(chunks), InMemoryFigureStore(figures or [])
        ),
    )
