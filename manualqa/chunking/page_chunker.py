"""
Page-aware chunker for page-tagged manual markdown.

The converter upstream marks each page with a `### Page N` line. Chunks never
span pages: paragraphs of one page are packed into a buffer until the token
estimate would pass the soft limit, or the buffer reaches the hard limit.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from manualqa.rag.index import ChunkRecord, is_valid_page

logger = logging.getLogger(__name__)

PAGE_HEADER_RE = re.compile(r"^### Page (\d+)[^\n]*", re.MULTILINE)
PAGE_SPLIT_RE = re.compile(r"\n(?=### Page )")
PARAGRAPH_SPLIT_RE = re.compile(r"\n{2,}")


@dataclass(frozen=True)
class ChunkerConfig:
    soft_limit: int = 500
    hard_limit: int = 600
    tokens_per_word: float = 0.75


def estimate_tokens(text: str, tokens_per_word: float = 0.75) -> int:
    """Rough token count from whitespace-separated words."""
    return math.ceil(len(text.split()) * tokens_per_word)


def chunk_markdown_by_page(
    markdown: str,
    *,
    manual_id: str,
    version: str,
    section_headings: Optional[Dict[int, str]] = None,
    config: ChunkerConfig = ChunkerConfig(),
) -> List[ChunkRecord]:
    """
    Split a page-tagged document into single-page chunks.

    - Blocks before the first page header, or whose header has no page
      number, are skipped.
    - Pages <= 0 or beyond the valid range are skipped as corrupt.
    - section_headings optionally maps page number -> heading, stored as the
      chunk's section_path.
    """
    chunks: List[ChunkRecord] = []

    def make_chunk(page: int, parts: List[str]) -> ChunkRecord:
        heading = (section_headings or {}).get(page)
        return ChunkRecord(
            id=f"{manual_id}@{version}::chunk_{len(chunks):05d}",
            manual_id=manual_id,
            version=version,
            page_start=page,
            page_end=page,
            content="\n\n".join(parts),
            section_path=[heading] if heading else [],
        )

    for block in PAGE_SPLIT_RE.split(markdown or ""):
        m = PAGE_HEADER_RE.match(block.lstrip("\n"))
        if not m:
            continue
        page = int(m.group(1))
        if not is_valid_page(page):
            logger.warning("Skipping page %s of %s: page number out of range", page, manual_id)
            continue

        body = block.lstrip("\n")[m.end():]
        paragraphs = [p.strip() for p in PARAGRAPH_SPLIT_RE.split(body) if p.strip()]

        buf: List[str] = []
        tok = 0
        for para in paragraphs:
            t = estimate_tokens(para, config.tokens_per_word)
            if buf and tok + t > config.soft_limit:
                chunks.append(make_chunk(page, buf))
                buf, tok = [], 0
            buf.append(para)
            tok += t
            if tok >= config.hard_limit:
                chunks.append(make_chunk(page, buf))
                buf, tok = [], 0
        if buf:
            chunks.append(make_chunk(page, buf))

    logger.info("Chunked manual %s v%s into %s chunks", manual_id, version, len(chunks))
    return chunks
