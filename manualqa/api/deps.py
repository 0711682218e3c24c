"""
Build the answering pipeline for the API (used in lifespan).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from manualqa.db.session import create_engine, create_sessionmaker, get_database_url
from manualqa.generation import AnswerGenerator, CitationBuilder
from manualqa.llm import create_client
from manualqa.orchestrator import AnswerPipeline
from manualqa.rag import (
    CohereReranker,
    EmbeddingClient,
    HybridRetriever,
    InMemoryChunkStore,
    InMemoryFigureStore,
    load_chunks,
    load_figures,
)
from manualqa.rag.index import CHUNKS_PATH, FIGURES_PATH
from manualqa.rag.reranker import COHERE_API_KEY
from manualqa.rag.store import PgChunkStore, PgFigureStore
from manualqa.retry import RetryPolicy

logger = logging.getLogger(__name__)

LLM_MAX_ATTEMPTS = int(os.getenv("LLM_MAX_ATTEMPTS", "1"))


@dataclass
class Services:
    """What the lifespan hands to the routes."""

    pipeline: Optional[AnswerPipeline] = None
    backend: str = "none"
    chunks_loaded: int = 0
    engine: Optional[AsyncEngine] = None
    configured: dict = field(default_factory=dict)


def build_pipeline() -> Services:
    """
    Wire stores, clients and stages from environment settings.

    Postgres stores when DATABASE_URL is set, else JSONL-backed in-memory
    stores when the chunks file exists. Returns an empty Services (no
    pipeline) when neither is available or no LLM key is configured.
    """
    configured = {
        "database": bool(get_database_url()),
        "reranker": bool(COHERE_API_KEY),
        "llm": bool(os.getenv("OPENAI_API_KEY")),
    }

    try:
        client = create_client(retry_policy=RetryPolicy(max_attempts=LLM_MAX_ATTEMPTS))
    except ValueError as exc:
        logger.warning("LLM client not configured: %s", exc)
        return Services(configured=configured)

    engine: Optional[AsyncEngine] = None
    url = get_database_url()
    if url:
        engine = create_engine(url)
        sessionmaker = create_sessionmaker(engine)
        chunk_store = PgChunkStore(sessionmaker)
        figure_store = PgFigureStore(sessionmaker)
        backend, chunks_loaded = "postgres", 0
    elif CHUNKS_PATH.exists():
        chunks = load_chunks(CHUNKS_PATH)
        figures = load_figures(FIGURES_PATH) if FIGURES_PATH.exists() else []
        chunk_store = InMemoryChunkStore(chunks)
        figure_store = InMemoryFigureStore(figures)
        backend, chunks_loaded = "memory", len(chunks)
    else:
        logger.warning("No DATABASE_URL and no chunks file at %s; pipeline disabled", CHUNKS_PATH)
        return Services(configured=configured)

    retriever = HybridRetriever(embedder=EmbeddingClient(client), store=chunk_store)
    pipeline = AnswerPipeline(
        retriever=retriever,
        reranker=CohereReranker(),
        generator=AnswerGenerator(client),
        citation_builder=CitationBuilder(chunk_store, figure_store),
    )
    logger.info("Pipeline ready (backend=%s, chunks=%s)", backend, chunks_loaded)
    return Services(
        pipeline=pipeline,
        backend=backend,
        chunks_loaded=chunks_loaded,
        engine=engine,
        configured=configured,
    )
