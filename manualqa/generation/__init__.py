"""
Answer generation module.

- Context building from selected chunks ([1] [p12] ...)
- Grounded answer generation (full or streamed)
- Page citations and figure thumbnails for the chunks used
"""

from .citations import CitationBuilder, CitationBundle, Thumbnail, is_relevant_figure
from .config import GenerationConfig
from .context_builder import build_context
from .fallback import NO_EVIDENCE_ANSWER, WEAK_EVIDENCE_ANSWER
from .generator import AnswerGenerator
from .prompts import SYSTEM_PROMPT

__all__ = [
    "build_context",
    "CitationBuilder",
    "CitationBundle",
    "Thumbnail",
    "is_relevant_figure",
    "GenerationConfig",
    "SYSTEM_PROMPT",
    "AnswerGenerator",
    "NO_EVIDENCE_ANSWER",
    "WEAK_EVIDENCE_ANSWER",
]
