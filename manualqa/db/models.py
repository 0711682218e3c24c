from __future__ import annotations

import datetime as dt
import os
from typing import List, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

EMBEDDING_DIM = int(os.getenv("EMBEDDING_DIM", "1536"))


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class ChunkRow(Base):
    __tablename__ = "chunks_text"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    manual_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    doc_version: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    page_start: Mapped[int] = mapped_column(Integer, nullable=False)
    page_end: Mapped[int] = mapped_column(Integer, nullable=False)
    section_path: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[Optional[List[float]]] = mapped_column(Vector(EMBEDDING_DIM), nullable=True)
    features: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: dt.datetime.now(dt.timezone.utc),
        nullable=False,
    )

    __table_args__ = (Index("idx_chunks_text_manual_pages", "manual_id", "page_start"),)


class FigureRow(Base):
    __tablename__ = "figures"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    manual_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    kind: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    figure_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    caption_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ocr_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    semantic_tags: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    keywords: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    detected_components: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    __table_args__ = (Index("idx_figures_manual_page", "manual_id", "page_number"),)
