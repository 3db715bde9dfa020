"""Tests for the FastAPI app endpoints."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from unittest.mock import patch

from fastapi.testclient import TestClient
from helpers import FakeProvider

from repo_radar.api.app import create_app
from repo_radar.api.server import run_server
from repo_radar.config import Settings
from repo_radar.embeddings import EmbeddingRouter
from repo_radar.models import Project, TrendLabel
from repo_radar.repository import ProjectRepository
from repo_radar.store import JsonDocumentStore

if TYPE_CHECKING:
    from pathlib import Path


def _seed(store: JsonDocumentStore, *projects: Project) -> None:
    repository = ProjectRepository(store)

    async def _add_all() -> None:
        for project in projects:
            await repository.add(project)

    asyncio.run(_add_all())


def _client(
    store: JsonDocumentStore | None = None, *providers: FakeProvider
) -> TestClient:
    router = EmbeddingRouter(list(providers) or [FakeProvider("gemini", [0.1, 0.2])])
    app = create_app(Settings(), store=store or JsonDocumentStore(), router=router)
    return TestClient(app)


def test_health_and_cors() -> None:
    with _client() as client:
        resp = client.get("/health", headers={"Origin": "https://example.com"})
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert "access-control-allow-origin" in resp.headers


# ---- Query embedding --------------------------------------------------------


def test_query_embedding_then_cache_hit() -> None:
    with _client() as client:
        first = client.post("/api/query-embedding", json={"query": "Vector DB"})
        second = client.post("/api/query-embedding", json={"query": "vector db"})

    assert first.status_code == 200
    body = first.json()
    assert body["embedding"] == [0.1, 0.2]
    assert body["provider"] == "gemini"
    assert body["dimensions"] == 2
    assert body["cached"] is False
    assert second.json()["cached"] is True


def test_query_embedding_empty_query() -> None:
    with _client() as client:
        resp = client.post("/api/query-embedding", json={"query": "   "})
    assert resp.status_code == 400


def test_query_embedding_all_providers_down() -> None:
    with _client(
        None,
        FakeProvider("gemini", error="quota"),
        FakeProvider("cloudflare", error="auth"),
    ) as client:
        resp = client.post("/api/query-embedding", json={"query": "agents"})
    assert resp.status_code == 502
    assert resp.json()["detail"] == "All embedding providers failed"


# ---- Badge ------------------------------------------------------------------


def test_badge_for_tracked_project() -> None:
    store = JsonDocumentStore()
    _seed(
        store,
        Project(
            full_name="acme/rocket",
            trend_label=TrendLabel.HOT,
            trend_momentum=90.0,
        ),
    )
    with _client(store) as client:
        resp = client.get("/api/badge/acme/rocket")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("image/svg+xml")
    assert resp.headers["cache-control"] == "max-age=3600"
    assert "hot 90.0" in resp.text


def test_badge_unknown_project() -> None:
    with _client() as client:
        resp = client.get("/api/badge/acme/ghost")
    assert resp.status_code == 404


# ---- Similar projects -------------------------------------------------------


def test_similar_projects_ranked() -> None:
    store = JsonDocumentStore()
    _seed(
        store,
        Project(full_name="acme/target", embeddings={"embedding_gemini": [1.0, 0.0]}),
        Project(
            full_name="acme/close",
            category="AI Agents",
            embeddings={"embedding_gemini": [0.9, 0.1]},
        ),
        Project(full_name="acme/far", embeddings={"embedding_gemini": [0.0, 1.0]}),
    )
    with _client(store) as client:
        resp = client.get("/api/projects/acme/target/similar", params={"limit": 1})

    assert resp.status_code == 200
    body = resp.json()
    assert body["full_name"] == "acme/target"
    assert body["provider"] == "gemini"
    assert [item["full_name"] for item in body["results"]] == ["acme/close"]
    assert body["results"][0]["category"] == "AI Agents"


def test_similar_projects_unknown_provider() -> None:
    with _client() as client:
        resp = client.get(
            "/api/projects/acme/target/similar", params={"provider": "openai"}
        )
    assert resp.status_code == 400


def test_similar_projects_unknown_project() -> None:
    with _client() as client:
        resp = client.get("/api/projects/acme/ghost/similar")
    assert resp.status_code == 404


def test_similar_projects_limit_validated() -> None:
    with _client() as client:
        resp = client.get("/api/projects/acme/target/similar", params={"limit": 0})
    assert resp.status_code == 422


def test_run_server_uses_api_settings(tmp_path: Path) -> None:
    settings = Settings()
    settings.store.path = tmp_path / "store.json"
    settings.api.port = 9100
    with patch("repo_radar.api.server.uvicorn.run") as mock_run:
        run_server(settings)
    kwargs = mock_run.call_args.kwargs
    assert kwargs["port"] == 9100
    assert kwargs["log_level"] == "info"
