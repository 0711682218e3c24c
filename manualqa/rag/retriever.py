"""
Keyword-biased vector retrieval over the chunk store.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from manualqa.errors import RetrievalError

from .config import RetrievalConfig
from .embedder import EmbeddingClient
from .index import Candidate
from .store import ChunkStore
from .terms import RegexTermExtractor, TermExtractor, expand_query, keyword_line, normalize_query

logger = logging.getLogger(__name__)

SEARCH_TIMEOUT_S = float(os.getenv("SEARCH_TIMEOUT_S", "15"))


@dataclass
class RetrievalResult:
    """Candidates from one retrieval pass."""

    candidates: List[Candidate]
    strategy: str
    keywords: List[str] = field(default_factory=list)
    expanded_query: str = ""
    search_query: str = ""


class Retriever(Protocol):
    """Protocol for retrieval implementations."""

    async def search(
        self,
        query: str,
        manual_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> RetrievalResult:
        """
        Search for chunks matching the query.

        Returns:
            RetrievalResult with candidates sorted by score (descending);
            strategy is "vector" when anything matched, else "none".
        """
        ...


@dataclass
class HybridRetriever:
    """Vector search whose query text is augmented with extracted technical keywords."""

    embedder: EmbeddingClient
    store: ChunkStore
    extractor: TermExtractor = field(default_factory=RegexTermExtractor)
    config: RetrievalConfig = field(default_factory=RetrievalConfig)
    timeout_s: float = SEARCH_TIMEOUT_S

    def build_search_query(self, query: str) -> tuple[str, str, List[str]]:
        """Return the expanded query, the text to embed, and the appended keywords."""
        base = expand_query(query) if self.config.expand_query else normalize_query(query)
        keywords = self.extractor.extract(base)
        if keywords:
            return base, f"{base}\nKeywords: {keyword_line(base, self.extractor)}", keywords
        return base, base, keywords

    async def search(
        self,
        query: str,
        manual_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> RetrievalResult:
        expanded, search_query, keywords = self.build_search_query(query)
        if keywords:
            logger.info("Keywords: %s", " ".join(keywords))

        vector = await self.embedder.embed(search_query)

        try:
            candidates = await asyncio.wait_for(
                self.store.similarity_search(
                    vector,
                    top_k=self.config.top_k,
                    min_score=self.config.min_score,
                    manual_id=manual_id,
                    tenant_id=tenant_id,
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Vector search timed out after %.1fs", self.timeout_s)
            raise RetrievalError("vector search timed out") from exc
        except RetrievalError:
            raise
        except Exception as exc:
            logger.error("Vector search failed: %r", exc)
            raise RetrievalError(f"vector search failed: {exc}") from exc

        candidates = sorted(candidates, key=lambda c: c.score, reverse=True)
        strategy = "vector" if candidates else "none"
        logger.info(
            "Vector search found %s candidates (manual=%s, tenant=%s)",
            len(candidates),
            manual_id or "all",
            tenant_id or "-",
        )
        return RetrievalResult(
            candidates=candidates,
            strategy=strategy,
            keywords=keywords,
            expanded_query=expanded,
            search_query=search_query,
        )
