"""
RAG (Retrieval-Augmented Generation) module.

Provides the retrieval stages for answering over equipment manuals:
- Keyword-biased vector retrieval
- Cross-encoder reranking with fallback
- MMR diversification
- Answerability gating
"""

from .config import GateConfig, MMRConfig, RerankConfig, RetrievalConfig
from .embedder import EmbeddingClient
from .gate import GateDecision, is_answerable
from .index import Candidate, ChunkRecord, FigureRecord, load_chunks, load_figures
from .mmr import diversify, jaccard_similarity
from .reranker import CohereReranker, Reranked, RerankFallback, RerankOutcome
from .retriever import HybridRetriever, RetrievalResult, Retriever
from .store import ChunkStore, FigureStore, InMemoryChunkStore, InMemoryFigureStore
from .terms import RegexTermExtractor, TermExtractor

__all__ = [
    "Candidate",
    "ChunkRecord",
    "FigureRecord",
    "load_chunks",
    "load_figures",
    "RetrievalConfig",
    "RerankConfig",
    "MMRConfig",
    "GateConfig",
    "EmbeddingClient",
    "HybridRetriever",
    "RetrievalResult",
    "Retriever",
    "CohereReranker",
    "Reranked",
    "RerankFallback",
    "RerankOutcome",
    "diversify",
    "jaccard_similarity",
    "GateDecision",
    "is_answerable",
    "ChunkStore",
    "FigureStore",
    "InMemoryChunkStore",
    "InMemoryFigureStore",
    "RegexTermExtractor",
    "TermExtractor",
]
