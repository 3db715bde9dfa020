"""Text embeddings with provider fallback, project backfill, and query caching.

Two hosted providers are supported (Gemini and Cloudflare Workers AI).
``EmbeddingRouter`` holds them as an ordered strategy table: single
embeddings take the first provider that succeeds, while project
embeddings are produced by every provider so each vector space can be
searched independently (vectors from different models are never
compared with each other).
"""

from __future__ import annotations

import asyncio
import hashlib
import math
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol

import httpx
import structlog
from pydantic import BaseModel, Field

from repo_radar.exceptions import EmbeddingError
from repo_radar.models import BackfillSummary

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from repo_radar.config import EmbeddingSettings
    from repo_radar.models import Project
    from repo_radar.repository import ProjectRepository
    from repo_radar.store import DocumentStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models"
_CLOUDFLARE_URL = "https://api.cloudflare.com/client/v4/accounts"

SEARCH_CACHE_COLLECTION = "search_cache"
_CACHE_KEY_LENGTH = 32


def embedding_key(provider: str) -> str:
    """Return the project field key for ``provider``'s vector."""
    return f"embedding_{provider}"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class EmbeddingResult(BaseModel):
    """A vector together with the provider that produced it."""

    embedding: list[float] = Field(description="The embedding vector.")
    provider: str = Field(description="Name of the provider that produced it.")
    dimensions: int = Field(ge=0)
    cached: bool = False


class SimilarProject(BaseModel):
    """A project ranked by cosine similarity to a target vector."""

    full_name: str
    score: float = Field(description="Cosine similarity in [-1, 1].")
    category: str = ""
    trend_label: str | None = None


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class EmbeddingProvider(Protocol):
    """One hosted embedding model."""

    name: str
    model: str
    dimensions: int

    async def embed(self, text: str) -> list[float]: ...


class GeminiEmbeddingProvider:
    """Google Gemini ``embedContent`` (768 dimensions)."""

    name = "gemini"
    dimensions = 768

    def __init__(
        self,
        api_key: str | None,
        client: httpx.AsyncClient,
        model: str = "text-embedding-004",
    ) -> None:
        self._api_key = api_key
        self._client = client
        self.model = model

    async def embed(self, text: str) -> list[float]:
        if not self._api_key:
            raise EmbeddingError("Gemini API key is not configured")

        response = await self._client.post(
            f"{_GEMINI_URL}/{self.model}:embedContent",
            params={"key": self._api_key},
            json={
                "model": f"models/{self.model}",
                "content": {"parts": [{"text": text}]},
            },
        )
        if not response.is_success:
            raise EmbeddingError(
                f"Gemini embedding failed ({response.status_code}): "
                f"{response.text[:200]}"
            )

        values = response.json().get("embedding", {}).get("values")
        if not isinstance(values, list) or not values:
            raise EmbeddingError("Gemini returned no embedding values")
        return [float(value) for value in values]


class CloudflareEmbeddingProvider:
    """Cloudflare Workers AI ``bge-large-en-v1.5`` (1024 dimensions)."""

    name = "cloudflare"
    dimensions = 1024

    def __init__(
        self,
        account_id: str | None,
        api_token: str | None,
        client: httpx.AsyncClient,
        model: str = "@cf/baai/bge-large-en-v1.5",
    ) -> None:
        self._account_id = account_id
        self._api_token = api_token
        self._client = client
        self.model = model

    async def embed(self, text: str) -> list[float]:
        if not self._account_id or not self._api_token:
            raise EmbeddingError("Cloudflare credentials are not configured")

        response = await self._client.post(
            f"{_CLOUDFLARE_URL}/{self._account_id}/ai/run/{self.model}",
            headers={"Authorization": f"Bearer {self._api_token}"},
            json={"text": [text]},
        )
        if not response.is_success:
            raise EmbeddingError(
                f"Cloudflare embedding failed ({response.status_code}): "
                f"{response.text[:200]}"
            )

        payload = response.json()
        if not payload.get("success", False):
            raise EmbeddingError(f"Cloudflare error: {payload.get('errors')}")
        data = (payload.get("result") or {}).get("data") or []
        if not data or not isinstance(data[0], list):
            raise EmbeddingError("Cloudflare returned no embedding values")
        return [float(value) for value in data[0]]


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


class EmbeddingRouter:
    """Ordered provider table with first-success fallback.

    Attributes:
        providers: Providers in priority order.
    """

    def __init__(self, providers: Sequence[EmbeddingProvider]) -> None:
        if not providers:
            raise ValueError("at least one embedding provider is required")
        self.providers = list(providers)

    @classmethod
    def from_settings(
        cls, settings: EmbeddingSettings, client: httpx.AsyncClient
    ) -> EmbeddingRouter:
        """Build the router with the configured primary provider first."""
        gemini = GeminiEmbeddingProvider(
            settings.gemini_api_key, client, model=settings.gemini_model
        )
        cloudflare = CloudflareEmbeddingProvider(
            settings.cloudflare_account_id,
            settings.cloudflare_api_token,
            client,
            model=settings.cloudflare_model,
        )
        ordered: list[EmbeddingProvider] = (
            [gemini, cloudflare]
            if settings.primary == "gemini"
            else [cloudflare, gemini]
        )
        return cls(ordered)

    @property
    def names(self) -> list[str]:
        return [provider.name for provider in self.providers]

    def get(self, name: str) -> EmbeddingProvider:
        for provider in self.providers:
            if provider.name == name:
                return provider
        raise EmbeddingError(f"Unknown embedding provider: {name!r}")

    async def embed(self, text: str, provider: str | None = None) -> EmbeddingResult:
        """Embed ``text`` with a forced provider or the first one that works.

        Args:
            text: Text to embed.
            provider: Optional provider name; disables fallback when given.

        Returns:
            The vector and the provider that produced it.

        Raises:
            EmbeddingError: If the forced provider fails, or every provider
                fails (``failures`` then names each one).
        """
        candidates = [self.get(provider)] if provider else self.providers
        failures: dict[str, str] = {}

        for candidate in candidates:
            try:
                vector = await candidate.embed(text)
            except (EmbeddingError, httpx.HTTPError) as exc:
                failures[candidate.name] = str(exc)
                logger.warning(
                    "embedding_provider_failed",
                    provider=candidate.name,
                    error=str(exc),
                )
                continue
            return EmbeddingResult(
                embedding=vector, provider=candidate.name, dimensions=len(vector)
            )

        summary = "; ".join(f"{name}: {error}" for name, error in failures.items())
        raise EmbeddingError(f"All embedding providers failed: {summary}", failures)

    async def embed_all(self, text: str) -> dict[str, list[float]]:
        """Embed with every provider concurrently.

        Returns:
            ``{"embedding_<name>": vector}`` for each provider that succeeded.
        """
        results = await asyncio.gather(
            *(provider.embed(text) for provider in self.providers),
            return_exceptions=True,
        )
        vectors: dict[str, list[float]] = {}
        for provider, result in zip(self.providers, results, strict=True):
            if isinstance(result, Exception):
                logger.warning(
                    "embedding_provider_failed",
                    provider=provider.name,
                    error=str(result),
                )
                continue
            if isinstance(result, BaseException):
                raise result
            vectors[embedding_key(provider.name)] = result
        return vectors


# ---------------------------------------------------------------------------
# Project embeddings
# ---------------------------------------------------------------------------


def project_to_embedding_text(project: Project) -> str:
    """Flatten the searchable parts of a project into one string."""
    parts = [
        project.name,
        project.description,
        project.writeup or "",
        " ".join(project.topics),
        project.language,
        project.category,
    ]
    return ". ".join(part.strip() for part in parts if part and part.strip())


async def backfill_embeddings(
    projects: ProjectRepository,
    router: EmbeddingRouter,
    *,
    force: bool = False,
) -> BackfillSummary:
    """Generate missing provider embeddings for every stored project.

    Args:
        projects: Project repository.
        router: Providers to embed with.
        force: Re-embed projects that already carry every vector.

    Returns:
        Updated/skipped/failed counts. A project counts as failed when no
        provider produced a vector for it.
    """
    summary = BackfillSummary()
    expected = {embedding_key(name) for name in router.names}

    for project in await projects.list_all():
        if not force and expected.issubset(project.embeddings):
            summary.skipped += 1
            continue

        text = project_to_embedding_text(project)
        if not text:
            summary.skipped += 1
            continue

        try:
            vectors = await router.embed_all(text)
            if not vectors:
                raise EmbeddingError(f"No provider embedded {project.full_name}")
            await projects.set_embeddings(project.id, vectors)
        except Exception as exc:
            logger.warning(
                "backfill_project_failed",
                full_name=project.full_name,
                error=str(exc),
            )
            summary.failed += 1
            continue

        summary.updated += 1
        logger.debug(
            "backfill_project_ok",
            full_name=project.full_name,
            providers=sorted(vectors),
        )

    logger.info(
        "backfill_complete",
        updated=summary.updated,
        skipped=summary.skipped,
        failed=summary.failed,
    )
    return summary


# ---------------------------------------------------------------------------
# Query embeddings (cached)
# ---------------------------------------------------------------------------


def normalize_query(query: str) -> str:
    return query.strip().lower()


def query_cache_key(normalized: str) -> str:
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:_CACHE_KEY_LENGTH]


class QueryEmbeddingService:
    """Embeds search queries with a TTL cache in the document store."""

    def __init__(
        self,
        router: EmbeddingRouter,
        store: DocumentStore,
        *,
        ttl: timedelta = timedelta(hours=24),
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._router = router
        self._store = store
        self.ttl = ttl
        self._now = now or (lambda: datetime.now(tz=UTC))

    async def get(self, query: str) -> EmbeddingResult:
        """Return the embedding for ``query``, serving fresh cache hits.

        Raises:
            ValueError: If the query is empty after normalisation.
            EmbeddingError: If every provider fails on a cache miss.
        """
        normalized = normalize_query(query)
        if not normalized:
            raise ValueError("query must not be empty")

        key = query_cache_key(normalized)
        cached = await self._read_cache(key)
        if cached is not None:
            return cached

        result = await self._router.embed(normalized)
        try:
            await self._store.set(
                SEARCH_CACHE_COLLECTION,
                key,
                {
                    "query": normalized,
                    "embedding": result.embedding,
                    "provider": result.provider,
                    "created_at": self._now().isoformat(),
                },
            )
        except Exception as exc:
            logger.warning("query_cache_write_failed", key=key, error=str(exc))
        return result

    async def _read_cache(self, key: str) -> EmbeddingResult | None:
        data = await self._store.get(SEARCH_CACHE_COLLECTION, key)
        if data is None:
            return None
        try:
            created_at = datetime.fromisoformat(str(data["created_at"]))
            embedding = [float(value) for value in data["embedding"]]
            provider = str(data["provider"])
        except (KeyError, TypeError, ValueError):
            return None
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        if self._now() - created_at >= self.ttl:
            return None
        return EmbeddingResult(
            embedding=embedding,
            provider=provider,
            dimensions=len(embedding),
            cached=True,
        )


# ---------------------------------------------------------------------------
# Similarity
# ---------------------------------------------------------------------------


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors (0.0 if either is zero)."""
    if len(a) != len(b):
        raise ValueError(f"dimension mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return dot / norm


def rank_similar(
    target: Project,
    candidates: Sequence[Project],
    key: str,
    limit: int = 5,
) -> list[SimilarProject]:
    """Rank ``candidates`` by similarity to ``target`` in one vector space.

    Projects without a vector under ``key`` (or with a mismatched
    dimension) are ignored, as is the target itself.
    """
    vector = target.embeddings.get(key)
    if not vector:
        return []

    scored: list[SimilarProject] = []
    for candidate in candidates:
        if candidate.full_name == target.full_name:
            continue
        other = candidate.embeddings.get(key)
        if not other or len(other) != len(vector):
            continue
        scored.append(
            SimilarProject(
                full_name=candidate.full_name,
                score=round(cosine_similarity(vector, other), 6),
                category=candidate.category,
                trend_label=candidate.trend_label,
            )
        )

    scored.sort(key=lambda item: item.score, reverse=True)
    return scored[:limit]
