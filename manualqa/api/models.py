"""
Request and response models for the manual QA API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Request body for POST /api/chat and /api/chat/stream."""

    query: str = Field(..., min_length=1, description="User question")
    manual_id: Optional[str] = Field(None, description="Restrict retrieval to one manual")
    tenant_id: Optional[str] = Field(None, description="Restrict retrieval to one tenant")


class SourceOut(BaseModel):
    chunk_id: str
    manual_id: str
    page_start: int
    page_end: int
    content: str
    score: float
    rerank_score: Optional[float] = None


class ThumbnailOut(BaseModel):
    page_id: str
    url: str
    title: str
    manual_id: str


class ChatResponse(BaseModel):
    """Response for POST /api/chat."""

    answer: str
    citations: List[str] = Field(default_factory=list)
    thumbnails: List[ThumbnailOut] = Field(default_factory=list)
    sources: List[SourceOut] = Field(default_factory=list)
    strategy: str
    gate_reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Body returned with HTTP 500 when retrieval or generation fails."""

    error: str
    sources: List[SourceOut] = Field(default_factory=list)
    strategy: str = "error"


class SearchRequest(BaseModel):
    """Request body for POST /api/search."""

    query: str = Field(..., min_length=1)
    manual_id: Optional[str] = None
    tenant_id: Optional[str] = None


class SearchResponse(BaseModel):
    """Response for POST /api/search."""

    query: str
    strategy: str
    results: List[SourceOut] = Field(default_factory=list)
    rerank_fallback: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    backend: str = "none"
    chunks_loaded: int = 0
    configured: Dict[str, bool] = Field(default_factory=dict)
