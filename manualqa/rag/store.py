"""
Chunk and figure stores: pgvector-backed for production, numpy-backed in memory
for local development and tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

import numpy as np
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from manualqa.db.models import ChunkRow, FigureRow
from manualqa.errors import RetrievalError

from .index import Candidate, ChunkRecord, FigureRecord

logger = logging.getLogger(__name__)


class ChunkStore(Protocol):
    """Read access to persisted chunks."""

    async def similarity_search(
        self,
        embedding: Sequence[float],
        *,
        top_k: int,
        min_score: float,
        manual_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[Candidate]:
        """Return candidates with score >= min_score, sorted by score descending."""
        ...

    async def get_chunks(self, ids: Sequence[str]) -> List[ChunkRecord]:
        ...


class FigureStore(Protocol):
    """Read access to persisted figures."""

    async def figures_on_pages(self, manual_id: str, pages: Iterable[int]) -> List[FigureRecord]:
        """Figures of one manual on the given pages that have a storage URL."""
        ...


# --- In-memory ---


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


@dataclass
class InMemoryChunkStore:
    """Cosine similarity over chunks held in memory."""

    chunks: List[ChunkRecord]
    embeddings: np.ndarray = field(init=False, repr=False)
    _indexed: List[ChunkRecord] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._indexed = [c for c in self.chunks if c.embedding]
        if self._indexed:
            matrix = np.asarray([c.embedding for c in self._indexed], dtype=np.float32)
            self.embeddings = _normalize_rows(matrix)
        else:
            self.embeddings = np.zeros((0, 0), dtype=np.float32)
        self._by_id: Dict[str, ChunkRecord] = {c.id: c for c in self.chunks}

    async def similarity_search(
        self,
        embedding: Sequence[float],
        *,
        top_k: int,
        min_score: float,
        manual_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[Candidate]:
        if not self._indexed:
            return []
        q = np.asarray(embedding, dtype=np.float32)
        q_norm = np.linalg.norm(q)
        if q_norm == 0:
            return []
        sims = self.embeddings @ (q / q_norm)
        results: List[Candidate] = []
        for idx in np.argsort(-sims, kind="stable"):
            score = float(sims[idx])
            if score < min_score:
                break
            chunk = self._indexed[int(idx)]
            if manual_id and chunk.manual_id != manual_id:
                continue
            if tenant_id and chunk.tenant_id != tenant_id:
                continue
            results.append(Candidate(chunk=chunk, score=score))
            if len(results) >= top_k:
                break
        return results

    async def get_chunks(self, ids: Sequence[str]) -> List[ChunkRecord]:
        return [self._by_id[cid] for cid in ids if cid in self._by_id]


@dataclass
class InMemoryFigureStore:
    figures: List[FigureRecord]

    async def figures_on_pages(self, manual_id: str, pages: Iterable[int]) -> List[FigureRecord]:
        wanted = set(pages)
        return [
            f
            for f in self.figures
            if f.manual_id == manual_id and f.page_number in wanted and f.storage_url
        ]


# --- Postgres / pgvector ---


def _chunk_from_row(row: ChunkRow) -> ChunkRecord:
    return ChunkRecord(
        id=row.id,
        manual_id=row.manual_id,
        version=row.doc_version or "",
        page_start=row.page_start,
        page_end=row.page_end,
        content=row.content or "",
        section_path=list(row.section_path or []),
        features=dict(row.features or {}),
        tenant_id=row.tenant_id,
    )


def _figure_from_row(row: FigureRow) -> FigureRecord:
    return FigureRecord(
        id=row.id,
        manual_id=row.manual_id,
        page_number=row.page_number,
        storage_url=row.storage_url,
        kind=row.kind,
        figure_type=row.figure_type,
        caption_text=row.caption_text,
        ocr_text=row.ocr_text,
        semantic_tags=list(row.semantic_tags or []),
        keywords=list(row.keywords or []),
        detected_components=dict(row.detected_components or {}),
    )


@dataclass
class PgChunkStore:
    """Chunks in Postgres with a pgvector embedding column."""

    sessionmaker: async_sessionmaker[AsyncSession]

    async def similarity_search(
        self,
        embedding: Sequence[float],
        *,
        top_k: int,
        min_score: float,
        manual_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> List[Candidate]:
        distance = ChunkRow.embedding.cosine_distance(list(embedding))
        stmt = (
            select(ChunkRow, (1 - distance).label("score"))
            .where(ChunkRow.embedding.is_not(None))
            .where(1 - distance >= min_score)
        )
        if manual_id:
            stmt = stmt.where(ChunkRow.manual_id == manual_id)
        if tenant_id:
            stmt = stmt.where(ChunkRow.tenant_id == tenant_id)
        stmt = stmt.order_by(distance).limit(top_k)

        try:
            async with self.sessionmaker() as session:
                rows = (await session.execute(stmt)).all()
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Vector search failed: %s", exc)
            raise RetrievalError(f"vector search failed: {exc}") from exc

        return [Candidate(chunk=_chunk_from_row(row), score=float(score)) for row, score in rows]

    async def get_chunks(self, ids: Sequence[str]) -> List[ChunkRecord]:
        if not ids:
            return []
        async with self.sessionmaker() as session:
            result = await session.execute(select(ChunkRow).where(ChunkRow.id.in_(list(ids))))
            return [_chunk_from_row(row) for row in result.scalars().all()]

    async def replace_manual(self, manual_id: str, chunks: Sequence[ChunkRecord]) -> int:
        """Delete a manual's chunks and insert the new set in one transaction."""
        async with self.sessionmaker() as session:
            async with session.begin():
                await session.execute(delete(ChunkRow).where(ChunkRow.manual_id == manual_id))
                session.add_all(
                    ChunkRow(
                        id=c.id,
                        manual_id=c.manual_id,
                        tenant_id=c.tenant_id,
                        doc_version=c.version,
                        page_start=c.page_start,
                        page_end=c.page_end,
                        section_path=list(c.section_path),
                        content=c.content,
                        embedding=c.embedding,
                        features=dict(c.features),
                    )
                    for c in chunks
                )
        logger.info("Replaced chunks for manual %s (%s rows)", manual_id, len(chunks))
        return len(chunks)


@dataclass
class PgFigureStore:
    sessionmaker: async_sessionmaker[AsyncSession]

    async def figures_on_pages(self, manual_id: str, pages: Iterable[int]) -> List[FigureRecord]:
        page_list = sorted(set(pages))
        if not page_list:
            return []
        stmt = (
            select(FigureRow)
            .where(FigureRow.manual_id == manual_id)
            .where(FigureRow.page_number.in_(page_list))
            .where(FigureRow.storage_url.is_not(None))
            .order_by(FigureRow.page_number, FigureRow.id)
        )
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return [_figure_from_row(row) for row in result.scalars().all()]
