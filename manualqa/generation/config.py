"""Configuration for answer generation."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class GenerationConfig:
    """Settings for grounded answer generation."""

    max_tokens: int = int(os.getenv("ANSWER_MAX_TOKENS", "350"))
    temperature: float = 0.2
