"""
Answering pipeline: retrieve -> rerank -> diversify -> gate -> (generate || cite).

All per-query state lives in a QueryContext created inside each call; the
pipeline object itself only holds collaborators and configuration.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from manualqa.generation.citations import CitationBuilder, CitationBundle, Thumbnail
from manualqa.generation.fallback import NO_EVIDENCE_ANSWER, WEAK_EVIDENCE_ANSWER
from manualqa.generation.generator import AnswerGenerator
from manualqa.rag.config import GateConfig, MMRConfig
from manualqa.rag.embedder import EMBEDDING_MODEL
from manualqa.rag.gate import REASON_NO_EVIDENCE, GateDecision, is_answerable
from manualqa.rag.index import Candidate
from manualqa.rag.mmr import diversify
from manualqa.rag.reranker import CohereReranker, RerankFallback
from manualqa.rag.retriever import Retriever
from manualqa.rag.terms import RegexTermExtractor, TermExtractor

logger = logging.getLogger(__name__)

PIPELINE_VERSION = "v3"
SOURCE_SNIPPET_CHARS = 200
PARTIAL_SOURCE_LIMIT = 3


@dataclass
class QueryRequest:
    query: str
    manual_id: Optional[str] = None
    tenant_id: Optional[str] = None


@dataclass
class SourceRef:
    """A candidate as shown to the caller: content truncated."""

    chunk_id: str
    manual_id: str
    page_start: int
    page_end: int
    content: str
    score: float
    rerank_score: Optional[float] = None

    @classmethod
    def from_candidate(cls, c: Candidate) -> "SourceRef":
        text = c.content or ""
        if len(text) > SOURCE_SNIPPET_CHARS:
            text = text[:SOURCE_SNIPPET_CHARS] + "..."
        return cls(
            chunk_id=c.id,
            manual_id=c.manual_id,
            page_start=c.page_start,
            page_end=c.page_end,
            content=text,
            score=round(c.score, 4),
            rerank_score=round(c.rerank_score, 4) if c.rerank_score is not None else None,
        )


@dataclass
class QueryContext:
    """Request-scoped state threaded through the stages."""

    request: QueryRequest
    expanded_query: str = ""
    candidates: List[Candidate] = field(default_factory=list)
    reranked: List[Candidate] = field(default_factory=list)
    selected: List[Candidate] = field(default_factory=list)
    strategy: str = "none"
    rerank_fallback: Optional[str] = None
    gate: Optional[GateDecision] = None
    timings_ms: Dict[str, int] = field(default_factory=dict)

    def mark(self, stage: str, started: float) -> None:
        self.timings_ms[stage] = int((time.perf_counter() - started) * 1000)


@dataclass
class PipelineResponse:
    answer: str
    citations: List[str]
    thumbnails: List[Thumbnail]
    sources: List[SourceRef]
    strategy: str
    metadata: Dict[str, Any]
    gate_reason: Optional[str] = None


@dataclass
class StreamEvent:
    """`token` events carry text; the final `done` event carries the response minus the answer."""

    event: str
    data: Any


class AnswerPipeline:
    """Runs one query through retrieval, gating, generation and citation building."""

    def __init__(
        self,
        retriever: Retriever,
        reranker: CohereReranker,
        generator: AnswerGenerator,
        citation_builder: CitationBuilder,
        mmr_config: Optional[MMRConfig] = None,
        gate_config: Optional[GateConfig] = None,
        extractor: Optional[TermExtractor] = None,
    ):
        self.retriever = retriever
        self.reranker = reranker
        self.generator = generator
        self.citation_builder = citation_builder
        self.mmr_config = mmr_config or MMRConfig()
        self.gate_config = gate_config or GateConfig()
        self.extractor = extractor or RegexTermExtractor()

    # --- stages ---

    async def search(self, request: QueryRequest) -> QueryContext:
        """Retrieve, rerank and diversify. Raises RetrievalError."""
        ctx = QueryContext(request=request)

        started = time.perf_counter()
        result = await self.retriever.search(
            request.query, manual_id=request.manual_id, tenant_id=request.tenant_id
        )
        ctx.mark("retrieval", started)
        ctx.candidates = result.candidates
        ctx.strategy = result.strategy
        ctx.expanded_query = result.expanded_query or request.query
        if not ctx.candidates:
            return ctx

        started = time.perf_counter()
        outcome = await self.reranker.rerank(ctx.expanded_query, ctx.candidates)
        ctx.mark("rerank", started)
        ctx.reranked = outcome.candidates
        if isinstance(outcome, RerankFallback):
            ctx.rerank_fallback = outcome.reason

        ctx.selected = diversify(
            ctx.reranked,
            lambda_=self.mmr_config.lambda_,
            target_count=self.mmr_config.target_count,
            extractor=self.extractor,
            token_bonus=self.mmr_config.token_bonus,
        )
        return ctx

    async def _build_citations(self, ctx: QueryContext) -> CitationBundle:
        started = time.perf_counter()
        try:
            return await self.citation_builder.build([c.id for c in ctx.selected])
        except Exception:
            logger.exception("Citation build failed; answering without citations")
            return CitationBundle()
        finally:
            ctx.mark("citations", started)

    def _metadata(self, ctx: QueryContext) -> Dict[str, Any]:
        used = ctx.selected or ctx.reranked
        return {
            "pipeline_version": PIPELINE_VERSION,
            "manual_id": ctx.request.manual_id or "all_manuals",
            "embedding_model": EMBEDDING_MODEL,
            "retrieval_strategy": ctx.strategy,
            "candidate_count": len(used),
            "rerank_scores": [c.rerank_score for c in used],
            "rerank_fallback": ctx.rerank_fallback,
            "timings_ms": dict(ctx.timings_ms),
        }

    def _refusal(self, ctx: QueryContext) -> Optional[PipelineResponse]:
        """Return a refusal response when the evidence does not justify generation."""
        if not ctx.candidates:
            logger.info("No evidence found for query; skipping generation")
            return PipelineResponse(
                answer=NO_EVIDENCE_ANSWER,
                citations=[],
                thumbnails=[],
                sources=[],
                strategy="none",
                metadata=self._metadata(ctx),
                gate_reason=REASON_NO_EVIDENCE,
            )

        ctx.gate = is_answerable(ctx.selected, self.gate_config)
        logger.info(
            "Answerability check: count=%s max_rerank=%.3f max_base=%.3f answerable=%s",
            ctx.gate.candidate_count,
            ctx.gate.max_rerank,
            ctx.gate.max_base,
            ctx.gate.answerable,
        )
        if ctx.gate.answerable:
            return None
        return PipelineResponse(
            answer=WEAK_EVIDENCE_ANSWER,
            citations=[],
            thumbnails=[],
            sources=[SourceRef.from_candidate(c) for c in ctx.selected[:PARTIAL_SOURCE_LIMIT]],
            strategy=ctx.strategy,
            metadata=self._metadata(ctx),
            gate_reason=ctx.gate.reason,
        )

    def _log_summary(self, ctx: QueryContext) -> None:
        logger.info(
            "Query done: strategy=%s candidates=%s selected=%s rerank_fallback=%s gate=%s timings=%s",
            ctx.strategy,
            len(ctx.candidates),
            len(ctx.selected),
            ctx.rerank_fallback,
            ctx.gate.reason if ctx.gate else None,
            ctx.timings_ms,
        )

    # --- entry points ---

    async def answer(self, request: QueryRequest) -> PipelineResponse:
        """Full answer. Raises RetrievalError or GenerationError."""
        ctx = await self.search(request)
        refusal = self._refusal(ctx)
        if refusal is not None:
            self._log_summary(ctx)
            return refusal

        citation_task = asyncio.create_task(self._build_citations(ctx))
        started = time.perf_counter()
        try:
            answer = await self.generator.generate(request.query, ctx.selected)
            ctx.mark("generation", started)
            bundle = await citation_task
        finally:
            await _cancel(citation_task)
        self._log_summary(ctx)

        return PipelineResponse(
            answer=answer,
            citations=bundle.citations,
            thumbnails=bundle.thumbnails,
            sources=[SourceRef.from_candidate(c) for c in ctx.selected],
            strategy=ctx.strategy,
            metadata=self._metadata(ctx),
        )

    async def stream(self, request: QueryRequest) -> AsyncIterator[StreamEvent]:
        """
        Stream answer tokens, then a `done` event with citations and metadata.

        Retrieval errors raise before the first event; generation errors raise
        mid-stream. Closing the iterator early stops reading upstream tokens.
        """
        ctx = await self.search(request)
        refusal = self._refusal(ctx)
        if refusal is not None:
            self._log_summary(ctx)
            yield StreamEvent("token", refusal.answer)
            yield StreamEvent("done", _done_payload(refusal))
            return

        citation_task = asyncio.create_task(self._build_citations(ctx))
        tokens = self.generator.generate_stream(request.query, ctx.selected)
        started = time.perf_counter()
        try:
            async for token in tokens:
                yield StreamEvent("token", token)
            ctx.mark("generation", started)
            bundle = await citation_task
        finally:
            await tokens.aclose()
            await _cancel(citation_task)
        self._log_summary(ctx)

        yield StreamEvent(
            "done",
            _done_payload(
                PipelineResponse(
                    answer="",
                    citations=bundle.citations,
                    thumbnails=bundle.thumbnails,
                    sources=[SourceRef.from_candidate(c) for c in ctx.selected],
                    strategy=ctx.strategy,
                    metadata=self._metadata(ctx),
                )
            ),
        )


async def _cancel(task: "asyncio.Task[Any]") -> None:
    """Cancel a task and wait for it to finish unwinding."""
    if task.done():
        return
    task.cancel()
    await asyncio.wait({task})


def _done_payload(resp: PipelineResponse) -> Dict[str, Any]:
    return {
        "citations": resp.citations,
        "thumbnails": [asdict(t) for t in resp.thumbnails],
        "sources": [asdict(s) for s in resp.sources],
        "strategy": resp.strategy,
        "gate_reason": resp.gate_reason,
        "metadata": resp.metadata,
    }
