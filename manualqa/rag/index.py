"""
Core records for retrieval over manual chunks and figures, plus JSONL loaders.
"""

from __future__ import annotations

import dataclasses
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


ROOT = Path(__file__).resolve().parents[2]
CHUNKS_PATH = Path(os.getenv("CHUNKS_PATH", str(ROOT / "data" / "chunks.jsonl")))
FIGURES_PATH = Path(os.getenv("FIGURES_PATH", str(ROOT / "data" / "figures.jsonl")))

# Exclusive upper bound; anything at or above it is a corrupt page reference.
MAX_VALID_PAGE = 1000


def is_valid_page(page: Optional[int]) -> bool:
    return page is not None and 0 < page < MAX_VALID_PAGE


@dataclasses.dataclass
class ChunkRecord:
    """A page-anchored unit of manual text."""

    id: str
    manual_id: str
    version: str
    page_start: int
    page_end: int
    content: str
    section_path: List[str] = dataclasses.field(default_factory=list)
    embedding: Optional[List[float]] = None
    features: Dict[str, Any] = dataclasses.field(default_factory=dict)
    tenant_id: Optional[str] = None

    @property
    def has_valid_pages(self) -> bool:
        return (
            is_valid_page(self.page_start)
            and is_valid_page(self.page_end)
            and self.page_start <= self.page_end
        )


@dataclasses.dataclass
class Candidate:
    """A chunk scored against one query."""

    chunk: ChunkRecord
    score: float
    rerank_score: Optional[float] = None
    original_score: Optional[float] = None

    @property
    def id(self) -> str:
        return self.chunk.id

    @property
    def manual_id(self) -> str:
        return self.chunk.manual_id

    @property
    def content(self) -> str:
        return self.chunk.content

    @property
    def page_start(self) -> int:
        return self.chunk.page_start

    @property
    def page_end(self) -> int:
        return self.chunk.page_end


@dataclasses.dataclass
class FigureRecord:
    """An extracted image tied to a manual page."""

    id: str
    manual_id: str
    page_number: int
    storage_url: Optional[str]
    kind: Optional[str] = None
    figure_type: Optional[str] = None
    caption_text: Optional[str] = None
    ocr_text: Optional[str] = None
    semantic_tags: List[str] = dataclasses.field(default_factory=list)
    keywords: List[str] = dataclasses.field(default_factory=list)
    detected_components: Dict[str, Any] = dataclasses.field(default_factory=dict)


def _iter_jsonl(path: Path) -> Iterable[dict]:
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            yield json.loads(line)


def load_chunks(path: Path | None = None, manual_id: Optional[str] = None) -> List[ChunkRecord]:
    """Load chunks from a JSONL file, optionally keeping a single manual."""
    if path is None:
        path = CHUNKS_PATH
    if not path.exists():
        raise FileNotFoundError(f"chunks file not found at {path}")

    chunks: List[ChunkRecord] = []
    for obj in _iter_jsonl(path):
        if manual_id and obj.get("manual_id") != manual_id:
            continue
        chunks.append(
            ChunkRecord(
                id=obj["id"],
                manual_id=obj["manual_id"],
                version=obj.get("version") or obj.get("doc_version") or "",
                page_start=int(obj["page_start"]),
                page_end=int(obj["page_end"]),
                content=obj.get("content") or obj.get("text") or "",
                section_path=list(obj.get("section_path") or []),
                embedding=obj.get("embedding"),
                features=dict(obj.get("features") or {}),
                tenant_id=obj.get("tenant_id"),
            )
        )
    return chunks


def load_figures(path: Path | None = None) -> List[FigureRecord]:
    """Load figures from a JSONL file."""
    if path is None:
        path = FIGURES_PATH
    if not path.exists():
        raise FileNotFoundError(f"figures file not found at {path}")

    figures: List[FigureRecord] = []
    for obj in _iter_jsonl(path):
        figures.append(
            FigureRecord(
                id=obj["id"],
                manual_id=obj["manual_id"],
                page_number=int(obj["page_number"]),
                storage_url=obj.get("storage_url"),
                kind=obj.get("kind"),
                figure_type=obj.get("figure_type"),
                caption_text=obj.get("caption_text"),
                ocr_text=obj.get("ocr_text"),
                semantic_tags=list(obj.get("semantic_tags") or []),
                keywords=list(obj.get("keywords") or []),
                detected_components=dict(obj.get("detected_components") or {}),
            )
        )
    return figures
