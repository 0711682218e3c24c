"""
Query/chunk embedding via an external embedding service.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, List

import openai

from manualqa.errors import RetrievalError

if TYPE_CHECKING:
    from manualqa.llm.client import ChatClient

logger = logging.getLogger(__name__)

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBED_BATCH_SIZE = 64


@dataclass
class EmbeddingClient:
    """Turns text into a dense vector. Failures are never masked as empty vectors."""

    client: "ChatClient"
    model_name: str = EMBEDDING_MODEL

    async def embed(self, text: str) -> List[float]:
        vectors = await self._embed_batch([text])
        return vectors[0]

    async def embed_many(self, texts: List[str], batch_size: int = EMBED_BATCH_SIZE) -> List[List[float]]:
        """Embed texts in batches, for ingestion."""
        out: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            out.extend(await self._embed_batch(texts[start : start + batch_size]))
        return out

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        try:
            vectors = await self.client.embed(texts, model=self.model_name)
        except openai.OpenAIError as exc:
            logger.error("Embedding request failed (model=%s): %s", self.model_name, exc)
            raise RetrievalError(f"embedding failed: {exc}") from exc
        if len(vectors) != len(texts) or any(not v for v in vectors):
            raise RetrievalError(
                f"embedding service returned {len(vectors)} vectors for {len(texts)} inputs"
            )
        return vectors
