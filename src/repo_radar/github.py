"""GitHub REST client: repository metrics, search, README, owner notices.

``fetch_metrics`` is the rate-limited fetcher used by the snapshot
collector. Every request goes through one ``httpx.AsyncClient`` built
with the configured timeout, and every metrics request passes through
the client's ``RateLimitState``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import structlog

from repo_radar.models import RepoMetrics, SearchCandidate
from repo_radar.rate_limiter import RateLimitState

if TYPE_CHECKING:
    from types import TracebackType

    from repo_radar.config import Settings
    from repo_radar.models import Project

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_DEFAULT_API_URL = "https://api.github.com"
_DEFAULT_TIMEOUT = 20.0
_JSON_ACCEPT = "application/vnd.github+json"
_RAW_ACCEPT = "application/vnd.github.raw"

_NOTIFY_TITLE = "Your project was featured on AI Digital Crew"


class GitHubClient:
    """Async GitHub API access shared by discovery, collection, and daily pick."""

    def __init__(
        self,
        token: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        rate_limit: RateLimitState | None = None,
        api_url: str = _DEFAULT_API_URL,
        api_version: str = "2022-11-28",
        timeout: float = _DEFAULT_TIMEOUT,
        notify_token: str | None = None,
    ) -> None:
        self._token = token
        self._notify_token = notify_token or token
        self._api_url = api_url.rstrip("/")
        self._api_version = api_version
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self.rate_limit = rate_limit or RateLimitState()

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> GitHubClient:
        limits = settings.rate_limit
        return cls(
            settings.github.token,
            client=client,
            rate_limit=RateLimitState(
                remaining=limits.default_remaining,
                low_water_mark=limits.low_water_mark,
                reset_buffer=limits.reset_buffer_seconds,
                default_remaining=limits.default_remaining,
            ),
            api_url=settings.github.api_url,
            api_version=settings.github.api_version,
            timeout=settings.http.timeout,
            notify_token=settings.github.notify_token,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def _headers(
        self, accept: str = _JSON_ACCEPT, token: str | None = None
    ) -> dict[str, str]:
        headers = {"Accept": accept, "X-GitHub-Api-Version": self._api_version}
        bearer = token or self._token
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    # ------------------------------------------------------------------
    # Metrics (rate-limited fetcher)
    # ------------------------------------------------------------------

    async def fetch_metrics(self, owner: str, name: str) -> RepoMetrics | None:
        """Fetch current star/fork/issue counts for one repository.

        Waits on the shared quota mirror first and refreshes it from the
        response headers afterwards.

        Returns:
            The metrics, or ``None`` for any non-2xx status (skip this
            repository this round).

        Raises:
            httpx.HTTPError: On transport failures such as timeouts.
        """
        await self.rate_limit.acquire()
        response = await self._client.get(
            f"{self._api_url}/repos/{owner}/{name}",
            headers=self._headers(),
        )
        self.rate_limit.update_from_headers(response.headers)

        if not response.is_success:
            logger.warning(
                "metrics_fetch_failed",
                full_name=f"{owner}/{name}",
                status=response.status_code,
            )
            return None

        payload = response.json()
        return RepoMetrics(
            stars=int(payload.get("stargazers_count", 0) or 0),
            forks=int(payload.get("forks_count", 0) or 0),
            open_issues=int(payload.get("open_issues_count", 0) or 0),
        )

    # ------------------------------------------------------------------
    # Search provider
    # ------------------------------------------------------------------

    async def search_repositories(
        self,
        query: str,
        *,
        per_page: int = 100,
        sort: str = "stars",
        order: str = "desc",
    ) -> list[SearchCandidate]:
        """Run one repository search.

        Non-2xx statuses, transport failures and malformed bodies are
        logged and yield an empty list, so one bad query never aborts a
        multi-query run.
        """
        try:
            response = await self._client.get(
                f"{self._api_url}/search/repositories",
                headers=self._headers(),
                params={
                    "q": query,
                    "sort": sort,
                    "order": order,
                    "per_page": per_page,
                },
            )
            if not response.is_success:
                logger.warning(
                    "search_failed",
                    query=query,
                    status=response.status_code,
                )
                return []
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("search_failed", query=query, error=str(exc))
            return []

        items = payload.get("items", []) if isinstance(payload, dict) else None
        if not isinstance(items, list):
            logger.warning("search_malformed_response", query=query)
            return []

        candidates: list[SearchCandidate] = []
        for item in items:
            if not isinstance(item, dict) or not item.get("full_name"):
                continue
            candidates.append(SearchCandidate.from_github(item))
        return candidates

    # ------------------------------------------------------------------
    # README / repository metadata
    # ------------------------------------------------------------------

    async def fetch_readme(self, owner: str, name: str, max_chars: int = 4000) -> str:
        response = await self._client.get(
            f"{self._api_url}/repos/{owner}/{name}/readme",
            headers=self._headers(accept=_RAW_ACCEPT),
        )
        if not response.is_success:
            return ""
        return response.text[:max_chars]

    async def fetch_repository(self, owner: str, name: str) -> dict[str, Any] | None:
        response = await self._client.get(
            f"{self._api_url}/repos/{owner}/{name}",
            headers=self._headers(),
        )
        if not response.is_success:
            return None
        payload = response.json()
        return payload if isinstance(payload, dict) else None

    # ------------------------------------------------------------------
    # Owner notification
    # ------------------------------------------------------------------

    async def notify_owner(self, project: Project, site_url: str) -> str | None:
        """Open an issue telling the owner their project was featured.

        Non-fatal: repositories with issues disabled (or missing
        permissions) just log a warning.

        Returns:
            The issue URL, or ``None`` if the issue could not be opened.
        """
        parts = project.split_full_name()
        if parts is None:
            return None
        owner, name = parts

        response = await self._client.post(
            f"{self._api_url}/repos/{owner}/{name}/issues",
            headers=self._headers(token=self._notify_token),
            json={
                "title": _NOTIFY_TITLE,
                "body": render_owner_notice(owner, name, site_url),
                "labels": [],
            },
        )
        if not response.is_success:
            logger.warning(
                "owner_notify_failed",
                full_name=project.full_name,
                status=response.status_code,
                body=response.text[:200],
            )
            return None

        issue_url = str(response.json().get("html_url", ""))
        logger.info("owner_notified", full_name=project.full_name, issue=issue_url)
        return issue_url


def render_owner_notice(owner: str, name: str, site_url: str) -> str:
    """Build the markdown body of the owner notification issue."""
    return "\n".join(
        [
            f"Hi @{owner},",
            "",
            f"**{name}** was picked as today's **Project of the Day** on "
            f"[{site_url}]({site_url}).",
            "",
            "**What we did:**",
            "- Featured it with a generated writeup and Quick Start guide",
            "- Sent a newsletter post to our subscribers",
            '- Added a "Daily Pick" badge to your project card',
            "",
            "**Want it removed?** Reply here and we will take it down, "
            "no questions asked.",
            "",
            "Feel free to close this issue. It is a heads-up, not a support request.",
        ]
    )
