"""API request/response models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from repo_radar.embeddings import SimilarProject


class QueryEmbeddingRequest(BaseModel):
    """Request payload for embedding a search query."""

    query: str = ""


class QueryEmbeddingResponse(BaseModel):
    """An embedded search query."""

    embedding: list[float]
    provider: str
    dimensions: int = Field(ge=0)
    cached: bool = False


class SimilarProjectsResponse(BaseModel):
    """Projects nearest to one project in a single provider's vector space."""

    full_name: str
    provider: str
    results: list[SimilarProject] = Field(default_factory=list)
