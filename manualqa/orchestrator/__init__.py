"""
Orchestrator: runs a query through retrieval, gating, generation and citations.
"""

from .pipeline import (
    AnswerPipeline,
    PipelineResponse,
    QueryContext,
    QueryRequest,
    SourceRef,
    StreamEvent,
)

__all__ = [
    "AnswerPipeline",
    "PipelineResponse",
    "QueryContext",
    "QueryRequest",
    "SourceRef",
    "StreamEvent",
]
