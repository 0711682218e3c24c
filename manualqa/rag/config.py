"""
Configuration for the retrieval pipeline stages.

Each stage gets its own immutable config so thresholds can be tuned from the
environment and tested in isolation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass(frozen=True)
class RetrievalConfig:
    """Vector search over-fetch and similarity floor."""

    top_k: int = _env_int("RETRIEVAL_TOP_K", 60)
    min_score: float = _env_float("RETRIEVAL_MIN_SCORE", 0.30)
    expand_query: bool = True


@dataclass(frozen=True)
class RerankConfig:
    """Cross-encoder rerank request settings."""

    top_n: int = _env_int("RERANK_TOP_N", 10)
    max_doc_chars: int = 1500
    model: str = os.getenv("RERANK_MODEL", "rerank-english-v3.0")
    endpoint: str = os.getenv("RERANK_URL", "https://api.cohere.ai/v1/rerank")
    timeout_s: float = _env_float("RERANK_TIMEOUT_S", 10.0)


@dataclass(frozen=True)
class MMRConfig:
    """Maximal marginal relevance trade-off."""

    lambda_: float = _env_float("MMR_LAMBDA", 0.7)
    target_count: int = _env_int("MMR_TARGET_COUNT", 6)
    token_bonus: float = 0.15


@dataclass(frozen=True)
class GateConfig:
    """Answerability thresholds.

    The defaults were picked empirically and should be checked against a
    labelled evaluation set before being trusted for a new corpus.
    """

    min_candidates: int = _env_int("GATE_MIN_CANDIDATES", 3)
    rerank_floor: float = _env_float("GATE_RERANK_FLOOR", 0.45)
    base_floor: float = _env_float("GATE_BASE_FLOOR", 0.35)
