"""
Pydantic models for the Philippine Legal RAG FastAPI surface.
"""

from typing import Optional
from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    """Request body for the search endpoint."""
    query: str = Field(..., max_length=2000)
    k: Optional[int] = Field(default=None, ge=1, le=20)
    search_by_title: Optional[bool] = None


class SourceInfo(BaseModel):
    """One cited source in a search response."""
    uuid: str
    filename: str
    token: str
    law_name: str
    snippet: str
    relevance_score: float
    date: Optional[str] = None
    found_via_citation: Optional[str] = None


class SearchResult(BaseModel):
    """Response body for the search endpoint."""
    question: str
    answer: str
    sources: list[str]
    details: list[SourceInfo] = []
    latency_ms: float


class HealthResponse(BaseModel):
    """Response body for health check."""
    status: str
    version: str
    database: str
    requests_remaining: Optional[int] = None
