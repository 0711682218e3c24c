"""
Context builder for grounded answer generation.

Formats selected chunks into numbered, page-tagged blocks so the model can
cite pages and the order matches the diversified selection.
"""

from __future__ import annotations

from typing import List

from manualqa.rag.index import Candidate


def page_label(candidate: Candidate) -> str:
    """`[p12]`, `[p12-13]`, or `[page unknown]`."""
    start, end = candidate.page_start, candidate.page_end
    if not start:
        return "[page unknown]"
    if end and end != start:
        return f"[p{start}-{end}]"
    return f"[p{start}]"


def build_context(candidates: List[Candidate]) -> str:
    """
    Render candidates as "[1] [p12] content" blocks separated by blank lines.

    Args:
        candidates: Selected chunks, in the order they should be presented.

    Returns:
        The context block ("" for no candidates).
    """
    if not candidates:
        return ""
    parts: List[str] = []
    for i, c in enumerate(candidates, 1):
        parts.append(f"[{i}] {page_label(c)} {(c.content or '').strip()}")
    return "\n\n".join(parts)
