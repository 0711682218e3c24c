"""
Maximal Marginal Relevance (MMR) for diversity selection.

Selects candidates by relevance while penalising word overlap with the ones
already chosen, so near-duplicate pages do not crowd out other evidence.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .index import Candidate
from .terms import RegexTermExtractor, TermExtractor

logger = logging.getLogger(__name__)

_DEFAULT_EXTRACTOR = RegexTermExtractor()
BACKFILL_STEP = 0.01


def jaccard_similarity(text1: str, text2: str) -> float:
    """Word-set Jaccard similarity (lower-cased, whitespace split)."""
    words1 = set((text1 or "").lower().split())
    words2 = set((text2 or "").lower().split())
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def relevance_scores(candidates: List[Candidate]) -> List[float]:
    """
    One relevance scale for the whole set.

    Rerank scores when every candidate has one, vector scores when none do.
    In a partially reranked set the unscored (backfilled) candidates rank just
    below the lowest rerank score, in their given order.
    """
    scored = [c.rerank_score for c in candidates if c.rerank_score is not None]
    if not scored:
        return [c.score for c in candidates]
    floor = min(scored)
    out: List[float] = []
    backfilled = 0
    for c in candidates:
        if c.rerank_score is not None:
            out.append(c.rerank_score)
        else:
            backfilled += 1
            out.append(floor - BACKFILL_STEP * backfilled)
    return out


def diversify(
    candidates: List[Candidate],
    lambda_: float = 0.7,
    target_count: int = 6,
    extractor: Optional[TermExtractor] = None,
    token_bonus: float = 0.15,
) -> List[Candidate]:
    """
    Select target_count diverse candidates using MMR.

    MMR = λ * (relevance + bonus) + (1-λ) * (1 - max_similarity_to_selected)

    Args:
        candidates: Candidates in rank order
        lambda_: Trade-off between relevance and diversity (0=max diversity, 1=max relevance)
        target_count: Number of candidates to keep
        extractor: Technical term detector for the exact-match bonus
        token_bonus: Added to relevance when the text holds a technical term

    Returns:
        The input unchanged when it already fits, else the selected candidates
        in pick order.
    """
    if len(candidates) <= target_count:
        return candidates

    extractor = extractor or _DEFAULT_EXTRACTOR
    base = relevance_scores(candidates)
    relevance = [
        r + (token_bonus if extractor.contains_technical_term(c.content) else 0.0)
        for r, c in zip(base, candidates)
    ]

    # First pick: highest relevance, earliest index on ties.
    first = max(range(len(candidates)), key=lambda i: (base[i], -i))
    selected = [first]
    remaining = [i for i in range(len(candidates)) if i != first]
    anchor = candidates[first].content
    max_sim = [jaccard_similarity(c.content, anchor) for c in candidates]

    while len(selected) < target_count and remaining:
        best_idx = remaining[0]
        best_score = float("-inf")
        for i in remaining:
            score = lambda_ * relevance[i] + (1 - lambda_) * (1 - max_sim[i])
            if score > best_score:
                best_score = score
                best_idx = i
        selected.append(best_idx)
        remaining.remove(best_idx)
        for i in remaining:
            sim = jaccard_similarity(candidates[i].content, candidates[best_idx].content)
            if sim > max_sim[i]:
                max_sim[i] = sim

    logger.info(
        "MMR selected %s of %s candidates (lambda=%.2f)", len(selected), len(candidates), lambda_
    )
    return [candidates[i] for i in selected]
