"""
Cross-encoder reranking through an external relevance service.

A rerank failure never fails the query: the outcome type says whether the
service was used or the retrieval order was kept.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional, Union

import httpx

from .config import RerankConfig
from .index import Candidate

logger = logging.getLogger(__name__)

COHERE_API_KEY = os.getenv("COHERE_API_KEY")


@dataclass
class Reranked:
    """Candidates reordered by the cross-encoder."""

    candidates: List[Candidate]

    @property
    def fallback_used(self) -> bool:
        return False


@dataclass
class RerankFallback:
    """Service unavailable: first top_n candidates in retrieval order, unscored."""

    candidates: List[Candidate]
    reason: str

    @property
    def fallback_used(self) -> bool:
        return True


RerankOutcome = Union[Reranked, RerankFallback]


def _fallback(candidates: List[Candidate], top_n: int, reason: str) -> RerankFallback:
    logger.warning("Rerank skipped (%s); keeping top %s in retrieval order", reason, top_n)
    kept = [dataclasses.replace(c, rerank_score=None) for c in candidates[:top_n]]
    return RerankFallback(candidates=kept, reason=reason)


@dataclass
class CohereReranker:
    """Reranker backed by a Cohere-compatible /rerank endpoint."""

    api_key: Optional[str] = COHERE_API_KEY
    config: RerankConfig = field(default_factory=RerankConfig)
    http_client: Optional[httpx.AsyncClient] = None

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.http_client is not None:
            return await self.http_client.post(
                self.config.endpoint, json=payload, headers=headers, timeout=self.config.timeout_s
            )
        async with httpx.AsyncClient(timeout=self.config.timeout_s) as client:
            return await client.post(self.config.endpoint, json=payload, headers=headers)

    async def rerank(
        self,
        query: str,
        candidates: List[Candidate],
        top_n: Optional[int] = None,
    ) -> RerankOutcome:
        """
        Re-rank candidates with the cross-encoder service.

        Args:
            query: Query text sent to the service
            candidates: Retrieval candidates, best first
            top_n: Number of candidates to keep (defaults to config.top_n)

        Returns:
            Reranked on success, RerankFallback when the service could not be used.
        """
        top_n = top_n or self.config.top_n
        if not candidates:
            return Reranked(candidates=[])
        if not self.api_key:
            return _fallback(candidates, top_n, "missing_credentials")

        documents = [(c.content or "")[: self.config.max_doc_chars] for c in candidates]
        payload = {
            "model": self.config.model,
            "query": query,
            "documents": documents,
            "top_n": min(top_n, len(documents)),
        }

        try:
            response = await self._post(payload)
        except httpx.HTTPError as exc:
            logger.error("Rerank request failed: %s", exc)
            return _fallback(candidates, top_n, "unavailable")

        if response.status_code // 100 != 2:
            logger.error("Rerank failed: %s %s", response.status_code, response.text[:500])
            return _fallback(candidates, top_n, f"http_{response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.error("Rerank returned a malformed body")
            return _fallback(candidates, top_n, "malformed_response")
        results = body.get("results") or []

        reranked: List[Candidate] = []
        seen: set[int] = set()
        for item in results:
            idx = item.get("index") if isinstance(item, dict) else None
            if not isinstance(idx, int) or not 0 <= idx < len(candidates) or idx in seen:
                continue
            seen.add(idx)
            score = item.get("relevance_score")
            original = candidates[idx]
            reranked.append(
                dataclasses.replace(
                    original,
                    rerank_score=float(score) if isinstance(score, (int, float)) else None,
                    original_score=original.score,
                )
            )
            if len(reranked) >= top_n:
                break

        if not reranked:
            return _fallback(candidates, top_n, "empty_results")

        # Service returned fewer than asked: top up from retrieval order.
        for idx, c in enumerate(candidates):
            if len(reranked) >= top_n:
                break
            if idx not in seen:
                reranked.append(c)

        logger.info("Reranked to top %s results", len(reranked))
        return Reranked(candidates=reranked)
