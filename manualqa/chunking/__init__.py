"""
Chunking utilities for page-tagged manual markdown.
"""

from .page_chunker import ChunkerConfig, chunk_markdown_by_page, estimate_tokens

__all__ = ["ChunkerConfig", "chunk_markdown_by_page", "estimate_tokens"]
