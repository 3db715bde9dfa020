"""Bulk discovery of repositories worth tracking.

Runs grouped OR-style topic searches (the AI pool) and a few global
star/recency searches (the global pool), drops forks, description-less
repos, and anything already stored or already seen this run, assigns a
category from a fixed topic keyword table, and inserts what is left,
capped per pool.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from repo_radar.models import DiscoverySummary, Project, ProjectSource

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from repo_radar.config import DiscoverySettings
    from repo_radar.github import GitHubClient
    from repo_radar.models import SearchCandidate
    from repo_radar.repository import ProjectRepository

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_CATEGORY = "Other"

# Category -> topic keywords. Order matters: the first match wins.
CATEGORY_TOPICS: dict[str, list[str]] = {
    "AI Agents": [
        "ai-agents", "llm-agent", "autonomous-agents", "multi-agent", "mcp",
        "computer-use",
    ],
    "LLM / GenAI": [
        "llm", "generative-ai", "large-language-model", "rag", "fine-tuning",
        "prompt-engineering",
    ],
    "Data Science": [
        "data-science", "machine-learning", "deep-learning", "neural-network",
        "mlops",
    ],
    "Big Data": [
        "big-data", "data-engineering", "data-pipeline", "apache-spark", "dbt",
        "streaming",
    ],
    "DevTools": [
        "developer-tools", "cli", "devops", "platform-engineering",
        "observability",
    ],
    "Web / Frontend": [
        "react", "nextjs", "svelte", "vue", "typescript", "tailwindcss",
        "webassembly",
    ],
    "Backend / APIs": [
        "fastapi", "rest-api", "graphql", "microservices", "nodejs", "grpc", "api",
    ],
    "Mobile": ["react-native", "flutter", "ios", "android", "swift", "kotlin"],
    "Security": [
        "security", "cybersecurity", "privacy", "zero-trust", "pentesting",
        "devsecops",
    ],
    "Cloud / Infra": [
        "kubernetes", "docker", "terraform", "cloud-native", "serverless",
        "infrastructure",
    ],
    "Blockchain / Web3": [
        "blockchain", "web3", "defi", "smart-contracts", "ethereum", "solidity",
    ],
    "Database": [
        "postgresql", "mongodb", "redis", "vector-database", "sqlite", "nosql",
    ],
}  # fmt: skip

# Topic groups searched with OR for the AI pool.
AI_TOPIC_GROUPS: list[list[str]] = [
    ["ai-agents", "llm-agent", "autonomous-agents", "multi-agent"],
    ["mcp", "computer-use", "agentic-ai"],
    ["llm", "large-language-model", "generative-ai"],
    ["rag", "fine-tuning", "prompt-engineering", "llmops"],
    ["machine-learning", "deep-learning", "mlops"],
    ["vector-database", "embeddings", "semantic-search"],
]


def classify(topics: Iterable[str]) -> str:
    """Return the first category whose keywords intersect ``topics``."""
    lowered = {topic.lower() for topic in topics}
    for category, keywords in CATEGORY_TOPICS.items():
        if lowered.intersection(keywords):
            return category
    return DEFAULT_CATEGORY


def build_topic_query(topics: Sequence[str], min_stars: int, pushed_after: str) -> str:
    """Build an OR-grouped topic search query."""
    topic_clause = " OR ".join(f"topic:{topic}" for topic in topics)
    return f"({topic_clause}) stars:>{min_stars} pushed:>{pushed_after}"


def build_global_queries(
    global_min_stars: int, min_stars: int, pushed_after: str, created_after: str
) -> list[str]:
    """Non-topic queries covering established and freshly-created repositories."""
    return [
        f"stars:>{global_min_stars} pushed:>{pushed_after}",
        f"stars:>{min_stars} created:>{created_after}",
    ]


class DiscoveryEngine:
    """Finds new repositories and inserts them as tracked projects."""

    def __init__(
        self,
        projects: ProjectRepository,
        search: GitHubClient,
        *,
        max_per_pool: int = 100,
        min_stars: int = 50,
        global_min_stars: int = 1000,
        lookback_days: int = 30,
        per_page: int = 100,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._projects = projects
        self._search = search
        self.max_per_pool = max_per_pool
        self.min_stars = min_stars
        self.global_min_stars = global_min_stars
        self.lookback_days = lookback_days
        self.per_page = per_page
        self._now = now or (lambda: datetime.now(tz=UTC))

    @classmethod
    def from_settings(
        cls,
        settings: DiscoverySettings,
        projects: ProjectRepository,
        search: GitHubClient,
        per_page: int = 100,
    ) -> DiscoveryEngine:
        return cls(
            projects,
            search,
            max_per_pool=settings.max_per_pool,
            min_stars=settings.min_stars,
            global_min_stars=settings.global_min_stars,
            lookback_days=settings.lookback_days,
            per_page=per_page,
        )

    def _queries(self) -> tuple[list[str], list[str]]:
        today = self._now().date()
        pushed_after = (today - timedelta(days=self.lookback_days)).isoformat()
        created_after = (today - timedelta(days=7)).isoformat()
        ai_queries = [
            build_topic_query(group, self.min_stars, pushed_after)
            for group in AI_TOPIC_GROUPS
        ]
        global_queries = build_global_queries(
            self.global_min_stars, self.min_stars, pushed_after, created_after
        )
        return ai_queries, global_queries

    async def discover(self) -> DiscoverySummary:
        """Run every search and insert accepted candidates.

        Returns:
            Counts of projects added per pool and candidates skipped as
            already stored.
        """
        existing = await self._projects.full_names()
        seen: set[str] = set()
        summary = DiscoverySummary()
        ai_queries, global_queries = self._queries()

        summary.added_ai = await self._run_pool(
            "ai", ai_queries, existing, seen, summary
        )
        summary.added_global = await self._run_pool(
            "global", global_queries, existing, seen, summary
        )

        logger.info(
            "discovery_complete",
            added_ai=summary.added_ai,
            added_global=summary.added_global,
            skipped_existing=summary.skipped_existing,
            queries=summary.queries_run,
        )
        return summary

    async def _run_pool(
        self,
        pool: str,
        queries: Sequence[str],
        existing: set[str],
        seen: set[str],
        summary: DiscoverySummary,
    ) -> int:
        added = 0
        for query in queries:
            if added >= self.max_per_pool:
                break
            candidates = await self._search.search_repositories(
                query, per_page=self.per_page
            )
            summary.queries_run += 1
            for candidate in candidates:
                if added >= self.max_per_pool:
                    break
                if not self._accept(candidate, existing, seen, summary):
                    continue
                project = Project.from_candidate(
                    candidate, classify(candidate.topics), ProjectSource.DISCOVERY
                )
                await self._projects.add(project)
                added += 1
                logger.debug(
                    "project_discovered",
                    pool=pool,
                    full_name=candidate.full_name,
                    category=project.category,
                )
        return added

    @staticmethod
    def _accept(
        candidate: SearchCandidate,
        existing: set[str],
        seen: set[str],
        summary: DiscoverySummary,
    ) -> bool:
        full_name = candidate.full_name
        if full_name in seen:
            return False
        seen.add(full_name)
        if full_name in existing:
            summary.skipped_existing += 1
            return False
        return not candidate.is_fork and bool(candidate.description)
