"""
Answerability gate: refuse before paying for generation when evidence is thin.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .config import GateConfig
from .index import Candidate

REASON_INSUFFICIENT_CANDIDATES = "insufficient_candidates"
REASON_INSUFFICIENT_QUALITY = "insufficient_quality"
REASON_NO_EVIDENCE = "insufficient_manual_evidence"


@dataclass
class GateDecision:
    answerable: bool
    reason: Optional[str]
    max_rerank: float
    max_base: float
    candidate_count: int


def is_answerable(candidates: List[Candidate], config: Optional[GateConfig] = None) -> GateDecision:
    """Accept the set if it is large enough and either score family clears its floor."""
    config = config or GateConfig()
    max_rerank = max((c.rerank_score or 0.0 for c in candidates), default=0.0)
    max_base = max((c.score or 0.0 for c in candidates), default=0.0)

    reason: Optional[str] = None
    if len(candidates) < config.min_candidates:
        reason = REASON_INSUFFICIENT_CANDIDATES
    elif max_rerank < config.rerank_floor and max_base < config.base_floor:
        reason = REASON_INSUFFICIENT_QUALITY

    return GateDecision(
        answerable=reason is None,
        reason=reason,
        max_rerank=max_rerank,
        max_base=max_base,
        candidate_count=len(candidates),
    )
