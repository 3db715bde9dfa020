"""Unit tests for repo_radar.github using httpx.MockTransport."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from helpers import github_item, mock_client

from repo_radar.github import GitHubClient, render_owner_notice
from repo_radar.models import Project
from repo_radar.rate_limiter import RateLimitState

if TYPE_CHECKING:
    from collections.abc import Callable


def _github(
    handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any
) -> GitHubClient:
    return GitHubClient("tok", client=mock_client(handler), **kwargs)


# ---------------------------------------------------------------------------
# TestFetchMetrics
# ---------------------------------------------------------------------------


class TestFetchMetrics:
    """fetch_metrics reads counters and mirrors quota headers."""

    @pytest.mark.asyncio()
    async def test_success(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "stargazers_count": 1200,
                    "forks_count": 80,
                    "open_issues_count": 7,
                },
                headers={
                    "x-ratelimit-remaining": "4321",
                    "x-ratelimit-reset": "1700000000",
                },
            )

        github = _github(handler)
        metrics = await github.fetch_metrics("acme", "rocket")

        assert metrics is not None
        assert (metrics.stars, metrics.forks, metrics.open_issues) == (1200, 80, 7)
        assert seen[0].url.path == "/repos/acme/rocket"
        assert seen[0].headers["authorization"] == "Bearer tok"
        assert seen[0].headers["x-github-api-version"] == "2022-11-28"
        assert github.rate_limit.remaining == 4321
        assert github.rate_limit.reset_at == 1_700_000_000.0

    @pytest.mark.asyncio()
    async def test_non_success_returns_none(self) -> None:
        github = _github(lambda request: httpx.Response(404, json={}))
        assert await github.fetch_metrics("acme", "gone") is None

    @pytest.mark.asyncio()
    async def test_missing_headers_reset_quota_mirror(self) -> None:
        state = RateLimitState(remaining=3, reset_at=0.0)
        github = _github(
            lambda request: httpx.Response(200, json={"stargazers_count": 1}),
            rate_limit=state,
        )
        await github.fetch_metrics("acme", "rocket")
        assert state.remaining == 5000

    @pytest.mark.asyncio()
    async def test_transport_error_propagates(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        github = _github(handler)
        with pytest.raises(httpx.ConnectTimeout):
            await github.fetch_metrics("acme", "rocket")

    @pytest.mark.asyncio()
    async def test_no_token_sends_no_authorization(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        github = GitHubClient(client=mock_client(handler))
        await github.fetch_metrics("acme", "rocket")
        assert "authorization" not in seen[0].headers


# ---------------------------------------------------------------------------
# TestSearch
# ---------------------------------------------------------------------------


class TestSearchRepositories:
    """search_repositories maps items to candidates."""

    @pytest.mark.asyncio()
    async def test_maps_items(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "items": [
                        github_item(
                            "acme/rocket", topics=["llm"], stargazers_count=900
                        ),
                        {"name": "no-full-name"},
                    ]
                },
            )

        github = _github(handler)
        results = await github.search_repositories("topic:llm", per_page=10)

        assert len(results) == 1
        candidate = results[0]
        assert candidate.full_name == "acme/rocket"
        assert candidate.owner == "acme"
        assert candidate.stars == 900
        assert candidate.topics == ["llm"]
        params = seen[0].url.params
        assert params["q"] == "topic:llm"
        assert params["per_page"] == "10"
        assert params["sort"] == "stars"

    @pytest.mark.asyncio()
    async def test_failure_returns_empty(self) -> None:
        github = _github(lambda request: httpx.Response(422, json={}))
        assert await github.search_repositories("bad query") == []

    @pytest.mark.asyncio()
    async def test_timeout_returns_empty(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        github = _github(handler)
        assert await github.search_repositories("topic:llm") == []

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        "body",
        [
            b"<html>not json</html>",
            b'[{"full_name": "acme/rocket"}]',
            b'{"items": {"full_name": "acme/rocket"}}',
        ],
    )
    async def test_malformed_body_returns_empty(self, body: bytes) -> None:
        github = _github(lambda request: httpx.Response(200, content=body))
        assert await github.search_repositories("topic:llm") == []


# ---------------------------------------------------------------------------
# TestReadmeAndRepository
# ---------------------------------------------------------------------------


class TestReadmeAndRepository:
    @pytest.mark.asyncio()
    async def test_readme_truncated(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="x" * 50)

        github = _github(handler)
        readme = await github.fetch_readme("acme", "rocket", max_chars=10)
        assert readme == "x" * 10
        assert seen[0].headers["accept"] == "application/vnd.github.raw"

    @pytest.mark.asyncio()
    async def test_readme_missing(self) -> None:
        github = _github(lambda request: httpx.Response(404))
        assert await github.fetch_readme("acme", "rocket") == ""

    @pytest.mark.asyncio()
    async def test_fetch_repository(self) -> None:
        github = _github(
            lambda request: httpx.Response(200, json=github_item("acme/rocket"))
        )
        payload = await github.fetch_repository("acme", "rocket")
        assert payload is not None
        assert payload["full_name"] == "acme/rocket"


# ---------------------------------------------------------------------------
# TestNotifyOwner
# ---------------------------------------------------------------------------


class TestNotifyOwner:
    """notify_owner opens an issue and never raises on HTTP errors."""

    @pytest.mark.asyncio()
    async def test_opens_issue_with_notify_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                201, json={"html_url": "https://github.com/acme/rocket/issues/1"}
            )

        github = _github(handler, notify_token="notify")
        url = await github.notify_owner(
            Project(full_name="acme/rocket"), "https://example.com"
        )

        assert url == "https://github.com/acme/rocket/issues/1"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/repos/acme/rocket/issues"
        assert request.headers["authorization"] == "Bearer notify"
        body = json.loads(request.content)
        assert "rocket" in body["body"]

    @pytest.mark.asyncio()
    async def test_issues_disabled_is_non_fatal(self) -> None:
        github = _github(lambda request: httpx.Response(410, text="Issues disabled"))
        assert (
            await github.notify_owner(Project(full_name="acme/rocket"), "https://x")
            is None
        )

    @pytest.mark.asyncio()
    async def test_malformed_name_skipped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        github = _github(handler)
        assert await github.notify_owner(Project(full_name="broken"), "https://x") is None

    def test_notice_mentions_site_and_owner(self) -> None:
        body = render_owner_notice("acme", "rocket", "https://example.com")
        assert body.startswith("Hi @acme,")
        assert "**rocket**" in body
        assert "https://example.com" in body
