"""
Chunk, embed and store one page-tagged manual.

Two modes:
- Default (dry-run): chunk the markdown and summarize the chunks per page,
  no embedding calls and no DB writes.
- Apply mode (--apply): embed every chunk and replace the manual's chunks in
  PostgreSQL (DATABASE_URL must be set).
"""

from __future__ import annotations

import argparse
import asyncio
import json
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional

from manualqa.chunking import ChunkerConfig, chunk_markdown_by_page, estimate_tokens
from manualqa.db.session import create_engine, create_sessionmaker, get_database_url
from manualqa.llm import create_client
from manualqa.rag import ChunkRecord, EmbeddingClient
from manualqa.rag.store import PgChunkStore


def load_section_headings(path: Optional[Path]) -> Dict[int, str]:
    """Read a {"page": "heading"} JSON file; keys are page numbers."""
    if path is None:
        return {}
    with path.open("r", encoding="utf-8") as f:
        raw = json.load(f)
    return {int(page): str(heading) for page, heading in raw.items()}


def summarize_chunks(chunks: List[ChunkRecord]) -> None:
    print(f"Built {len(chunks)} chunks")
    if not chunks:
        return
    by_page: Counter = Counter(c.page_start for c in chunks)
    sizes = [estimate_tokens(c.content) for c in chunks]
    print(f"  Pages covered:       {len(by_page)}")
    print(f"  Max chunks per page: {max(by_page.values())}")
    print(f"  Est. tokens (min/avg/max): {min(sizes)}/{sum(sizes) // len(sizes)}/{max(sizes)}")


async def apply_ingest(manual_id: str, chunks: List[ChunkRecord], tenant_id: Optional[str]) -> int:
    url = get_database_url()
    if not url:
        raise SystemExit("Error: DATABASE_URL is not set")

    embedder = EmbeddingClient(create_client())
    vectors = await embedder.embed_many([c.content for c in chunks])
    for chunk, vector in zip(chunks, vectors):
        chunk.embedding = vector
        chunk.tenant_id = tenant_id

    engine = create_engine(url)
    try:
        store = PgChunkStore(create_sessionmaker(engine))
        return await store.replace_manual(manual_id, chunks)
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Chunk a page-tagged manual (### Page N headers) and optionally embed and store it.",
    )
    parser.add_argument("input", type=Path, help="Path to the manual markdown file")
    parser.add_argument("--manual-id", required=True, help="Manual identifier")
    parser.add_argument("--version", default="v1", help="Document version label")
    parser.add_argument("--tenant-id", default=None, help="Tenant that owns the manual")
    parser.add_argument(
        "--sections",
        type=Path,
        default=None,
        help="Optional JSON file mapping page number to section heading",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Embed chunks and write them to the database. Without this flag, runs in dry-run mode.",
    )
    args = parser.parse_args()

    if not args.input.exists():
        print(f"Error: input file not found: {args.input}")
        return

    markdown = args.input.read_text(encoding="utf-8")
    chunks = chunk_markdown_by_page(
        markdown,
        manual_id=args.manual_id,
        version=args.version,
        section_headings=load_section_headings(args.sections),
        config=ChunkerConfig(),
    )
    summarize_chunks(chunks)

    if not args.apply:
        print("\nDry run complete. No embeddings or database changes were made.")
        return
    if not chunks:
        print("\nNothing to ingest.")
        return

    print("\nApply mode enabled: embedding and storing chunks...")
    stored = asyncio.run(apply_ingest(args.manual_id, chunks, args.tenant_id))
    print(f"Stored {stored} chunks for manual {args.manual_id}")


if __name__ == "__main__":
    main()
