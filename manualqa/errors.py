"""
Error taxonomy for the answering pipeline.

Only failures that end a query are exceptions. Rerank problems fall back to
retrieval order and figure lookup problems are absorbed by the citation
builder, so neither has a type here.
"""

from __future__ import annotations


class ManualQAError(Exception):
    """Base class for query-level failures."""

    kind = "error"


class RetrievalError(ManualQAError):
    """Embedding or similarity search failed; no evidence could be gathered."""

    kind = "retrieval_error"


class GenerationError(ManualQAError):
    """The language model call failed or returned nothing usable."""

    kind = "generation_error"
