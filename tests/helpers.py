"""Builders and fakes shared across the repo-radar tests."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx

from repo_radar.exceptions import EmbeddingError
from repo_radar.models import RepoMetrics, SearchCandidate, Snapshot

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

FIXED_NOW = datetime(2026, 3, 15, 6, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_snapshots(
    stars: Sequence[int],
    *,
    end: date = FIXED_NOW.date(),
    forks: Sequence[int] | None = None,
) -> list[Snapshot]:
    """Daily snapshots ending on ``end``, oldest first."""
    fork_counts = list(forks) if forks is not None else [0] * len(stars)
    start = end - timedelta(days=len(stars) - 1)
    return [
        Snapshot(date=start + timedelta(days=i), stars=count, forks=fork_counts[i])
        for i, count in enumerate(stars)
    ]


def make_candidate(full_name: str, **fields: Any) -> SearchCandidate:
    owner, _, name = full_name.partition("/")
    defaults: dict[str, Any] = {
        "name": name,
        "owner": owner,
        "url": f"https://github.com/{full_name}",
        "description": f"{name} does things",
        "stars": 100,
        "topics": [],
    }
    defaults.update(fields)
    return SearchCandidate(full_name=full_name, **defaults)


def github_item(full_name: str, **fields: Any) -> dict[str, Any]:
    """A ``/search/repositories`` item as GitHub returns it."""
    owner, _, name = full_name.partition("/")
    item: dict[str, Any] = {
        "full_name": full_name,
        "name": name,
        "owner": {"login": owner, "avatar_url": f"https://avatars/{owner}"},
        "html_url": f"https://github.com/{full_name}",
        "description": f"{name} does things",
        "stargazers_count": 100,
        "forks_count": 10,
        "open_issues_count": 1,
        "language": "Python",
        "topics": [],
        "fork": False,
    }
    item.update(fields)
    return item


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """An AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeFetcher:
    """Stands in for ``GitHubClient.fetch_metrics``.

    ``responses`` maps ``owner/name`` to metrics, ``None`` (skip), or an
    exception instance to raise.
    """

    def __init__(self, responses: dict[str, RepoMetrics | Exception | None]) -> None:
        self.responses = responses
        self.calls: list[str] = []

    async def fetch_metrics(self, owner: str, name: str) -> RepoMetrics | None:
        full_name = f"{owner}/{name}"
        self.calls.append(full_name)
        result = self.responses.get(full_name)
        if isinstance(result, Exception):
            raise result
        return result




class FakeProvider:
    """Embedding provider returning a fixed vector or raising ``EmbeddingError``."""

    def __init__(
        self, name: str, vector: list[float] | None = None, error: str | None = None
    ) -> None:
        self.name = name
        self.model = f"{name}-model"
        self.dimensions = len(vector or [])
        self._vector = vector
        self._error = error
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self._error is not None:
            raise EmbeddingError(self._error)
        assert self._vector is not None
        return list(self._vector)
