"""FastAPI application: query embeddings, momentum badges, similar projects."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
import structlog
from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from repo_radar import __version__
from repo_radar.api.badge import render_badge
from repo_radar.api.models import (
    QueryEmbeddingRequest,
    QueryEmbeddingResponse,
    SimilarProjectsResponse,
)
from repo_radar.config import Settings
from repo_radar.embeddings import (
    EmbeddingRouter,
    QueryEmbeddingService,
    embedding_key,
    rank_similar,
)
from repo_radar.exceptions import EmbeddingError
from repo_radar.repository import ProjectRepository
from repo_radar.store import JsonDocumentStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from repo_radar.store import DocumentStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    store: DocumentStore | None = None,
    router: EmbeddingRouter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI server app.

    Args:
        settings: Resolved settings; loaded from the environment if omitted.
        store: Document store; a JSON store at ``settings.store.path`` if omitted.
        router: Embedding providers; built from settings if omitted.
    """
    app_settings = settings or Settings.load()
    app_store = store or JsonDocumentStore(app_settings.store.path)

    http_client: httpx.AsyncClient | None = None
    if router is None:
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(app_settings.http.timeout)
        )
        router = EmbeddingRouter.from_settings(app_settings.embedding, http_client)

    projects = ProjectRepository(app_store)
    query_service = QueryEmbeddingService(
        router,
        app_store,
        ttl=timedelta(hours=app_settings.embedding.cache_ttl_hours),
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if isinstance(app_store, JsonDocumentStore):
            await app_store.flush()
        if http_client is not None:
            await http_client.aclose()

    app = FastAPI(title="repo-radar API", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = app_settings
    app.state.store = app_store
    app.state.router = router

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/query-embedding", response_model=QueryEmbeddingResponse)
    async def query_embedding(payload: QueryEmbeddingRequest) -> QueryEmbeddingResponse:
        try:
            result = await query_service.get(payload.query)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except EmbeddingError as exc:
            logger.error("query_embedding_failed", failures=exc.failures)
            raise HTTPException(
                status_code=502, detail="All embedding providers failed"
            ) from exc
        return QueryEmbeddingResponse(**result.model_dump())

    @app.get("/api/badge/{owner}/{name}")
    async def badge(owner: str, name: str) -> Response:
        project = await projects.find_by_full_name(f"{owner}/{name}")
        if project is None:
            raise HTTPException(status_code=404, detail="Project not found")
        svg = render_badge(project.trend_label, project.trend_momentum)
        return Response(
            content=svg,
            media_type="image/svg+xml",
            headers={"Cache-Control": "max-age=3600"},
        )

    @app.get(
        "/api/projects/{owner}/{name}/similar",
        response_model=SimilarProjectsResponse,
    )
    async def similar_projects(
        owner: str,
        name: str,
        provider: str = "gemini",
        limit: int = Query(default=5, ge=1, le=50),
    ) -> SimilarProjectsResponse:
        if provider not in router.names:
            raise HTTPException(
                status_code=400, detail=f"Unknown provider: {provider}"
            )
        full_name = f"{owner}/{name}"
        target = await projects.find_by_full_name(full_name)
        if target is None:
            raise HTTPException(status_code=404, detail="Project not found")

        ranked = rank_similar(
            target, await projects.list_all(), embedding_key(provider), limit
        )
        return SimilarProjectsResponse(
            full_name=full_name, provider=provider, results=ranked
        )

    return app
