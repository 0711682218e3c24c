"""
Map the chunks used for an answer back to page citations and figure thumbnails.

Pages are grouped per manual and figures are only looked up on their own
manual's pages, so a figure from one manual can never attach to another
manual's citation even when page numbers coincide.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple

from manualqa.rag.index import ChunkRecord, FigureRecord, is_valid_page
from manualqa.rag.store import ChunkStore, FigureStore

logger = logging.getLogger(__name__)

FIGURE_LOOKUP_TIMEOUT_S = float(os.getenv("FIGURE_LOOKUP_TIMEOUT_S", "10"))

MIN_CAPTION_CHARS = 10
MIN_OCR_CHARS = 5
KNOWN_FIGURE_KINDS = (
    "diagram",
    "schematic",
    "table",
    "exploded",
    "wiring",
    "flowchart",
    "chart",
    "photo",
    "illustration",
    "drawing",
    "layout",
)


@dataclass
class Thumbnail:
    page_id: str
    url: str
    title: str
    manual_id: str


@dataclass
class CitationBundle:
    citations: List[str] = field(default_factory=list)
    thumbnails: List[Thumbnail] = field(default_factory=list)
    failed_manuals: List[str] = field(default_factory=list)


def citation_id(manual_id: str, page: int) -> str:
    return f"{manual_id}:p{page}"


def _figure_kind(fig: FigureRecord) -> str:
    return (fig.figure_type or fig.kind or "").strip()


def has_known_kind(fig: FigureRecord) -> bool:
    kind = _figure_kind(fig).lower()
    return any(k in kind for k in KNOWN_FIGURE_KINDS)


def is_relevant_figure(fig: FigureRecord) -> bool:
    """A citable figure needs a storage URL and at least one non-trivial signal."""
    if not fig.storage_url:
        return False
    if fig.caption_text and len(fig.caption_text.strip()) > MIN_CAPTION_CHARS:
        return True
    if fig.ocr_text and len(fig.ocr_text.strip()) > MIN_OCR_CHARS:
        return True
    if fig.semantic_tags or fig.keywords or fig.detected_components:
        return True
    return has_known_kind(fig)


def thumbnail_title(fig: FigureRecord) -> str:
    label = _figure_kind(fig)
    if label:
        label = label.capitalize()
    elif fig.caption_text and fig.caption_text.strip():
        label = fig.caption_text.strip()[:50]
    else:
        label = "Figure"
    return f"{label} · {fig.manual_id} p.{fig.page_number}"


def group_pages(chunks: Sequence[ChunkRecord]) -> Dict[str, Set[int]]:
    """Touched pages per manual, in first-seen manual order, corrupt pages dropped."""
    by_manual: Dict[str, Set[int]] = {}
    rejected = 0
    for chunk in chunks:
        pages = by_manual.setdefault(chunk.manual_id, set())
        for page in range(chunk.page_start, chunk.page_end + 1):
            if is_valid_page(page):
                pages.add(page)
            else:
                rejected += 1
    if rejected:
        logger.warning("Rejected %s invalid page references", rejected)
    return {m: pages for m, pages in by_manual.items() if pages}


class CitationBuilder:
    """Builds citations and thumbnails for the chunks an answer used."""

    def __init__(
        self,
        chunk_store: ChunkStore,
        figure_store: FigureStore,
        lookup_timeout_s: float = FIGURE_LOOKUP_TIMEOUT_S,
    ):
        self.chunk_store = chunk_store
        self.figure_store = figure_store
        self.lookup_timeout_s = lookup_timeout_s

    async def _figures_for(self, manual_id: str, pages: Set[int]) -> List[FigureRecord]:
        figures = await asyncio.wait_for(
            self.figure_store.figures_on_pages(manual_id, sorted(pages)),
            timeout=self.lookup_timeout_s,
        )
        # Re-check the store's answer against this manual's own pages.
        return [
            f
            for f in figures
            if f.manual_id == manual_id and f.page_number in pages and is_relevant_figure(f)
        ]

    async def build(self, used_chunk_ids: Sequence[str]) -> CitationBundle:
        """Raises asyncio.TimeoutError when the chunk lookup outlives lookup_timeout_s."""
        if not used_chunk_ids:
            return CitationBundle()

        # Keep the caller's ordering for the first-seen manual order.
        order = {cid: i for i, cid in enumerate(dict.fromkeys(used_chunk_ids))}
        chunks = await asyncio.wait_for(
            self.chunk_store.get_chunks(list(order)), timeout=self.lookup_timeout_s
        )
        chunks = sorted(chunks, key=lambda c: order.get(c.id, len(order)))
        pages_by_manual = group_pages(chunks)

        citations = [
            citation_id(manual_id, page)
            for manual_id, pages in pages_by_manual.items()
            for page in sorted(pages)
        ]

        manual_ids = list(pages_by_manual)
        results = await asyncio.gather(
            *(self._figures_for(m, pages_by_manual[m]) for m in manual_ids),
            return_exceptions=True,
        )

        thumbnails: List[Thumbnail] = []
        failed: List[str] = []
        seen: Set[str] = set()
        for manual_id, result in zip(manual_ids, results):
            if isinstance(result, BaseException):
                logger.error("Figure lookup failed for manual %s: %r", manual_id, result)
                failed.append(manual_id)
                continue
            ordered: List[Tuple[int, str, FigureRecord]] = sorted(
                ((f.page_number, f.id, f) for f in result), key=lambda t: (t[0], t[1])
            )
            for _, fig_id, fig in ordered:
                if fig_id in seen:
                    continue
                seen.add(fig_id)
                thumbnails.append(
                    Thumbnail(
                        page_id=citation_id(fig.manual_id, fig.page_number),
                        url=fig.storage_url or "",
                        title=thumbnail_title(fig),
                        manual_id=fig.manual_id,
                    )
                )

        logger.info(
            "Built %s citations and %s thumbnails across %s manuals",
            len(citations),
            len(thumbnails),
            len(manual_ids),
        )
        return CitationBundle(citations=citations, thumbnails=thumbnails, failed_manuals=failed)
