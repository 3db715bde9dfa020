"""Project-of-the-day pipeline.

Searches every category topic for repositories created in the last week,
picks the most-starred one not yet stored, generates its writeup, stores
it, notifies the owner, and publishes a newsletter post.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from repo_radar.discovery import CATEGORY_TOPICS
from repo_radar.models import Project, ProjectSource, SearchCandidate
from repo_radar.publisher import build_daily_post

if TYPE_CHECKING:
    from collections.abc import Callable

    from repo_radar.config import DailyPickSettings
    from repo_radar.github import GitHubClient
    from repo_radar.publisher import WebhookPublisher
    from repo_radar.repository import ProjectRepository
    from repo_radar.writeup import WriteupGenerator

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class DailyPickResult(BaseModel):
    """What the daily pick run chose and what it did with it."""

    project: Project
    candidates: int = Field(ge=0, description="Unique candidates considered.")
    notified_issue: str | None = None
    published: bool = False


class DailyPickPipeline:
    """Chooses, writes up, stores, and announces one new repository."""

    def __init__(
        self,
        projects: ProjectRepository,
        github: GitHubClient,
        writer: WriteupGenerator,
        publisher: WebhookPublisher | None = None,
        *,
        min_stars: int = 30,
        lookback_days: int = 7,
        per_topic: int = 10,
        readme_max_chars: int = 4000,
        default_category: str = "AI Agents",
        site_url: str = "https://aidigitalcrew.com",
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._projects = projects
        self._github = github
        self._writer = writer
        self._publisher = publisher
        self.min_stars = min_stars
        self.lookback_days = lookback_days
        self.per_topic = per_topic
        self.readme_max_chars = readme_max_chars
        self.default_category = default_category
        self.site_url = site_url
        self._now = now or (lambda: datetime.now(tz=UTC))

    @classmethod
    def from_settings(
        cls,
        settings: DailyPickSettings,
        projects: ProjectRepository,
        github: GitHubClient,
        writer: WriteupGenerator,
        publisher: WebhookPublisher | None = None,
        site_url: str = "https://aidigitalcrew.com",
    ) -> DailyPickPipeline:
        return cls(
            projects,
            github,
            writer,
            publisher,
            min_stars=settings.min_stars,
            lookback_days=settings.lookback_days,
            per_topic=settings.per_topic,
            readme_max_chars=settings.readme_max_chars,
            default_category=settings.default_category,
            site_url=site_url,
        )

    async def gather_candidates(self) -> tuple[list[SearchCandidate], dict[str, str]]:
        """Search every category topic and return unique candidates.

        Returns:
            Candidates sorted by stars (descending) and a map from
            ``full_name`` to the category it was first seen under.
        """
        since = (self._now().date() - timedelta(days=self.lookback_days)).isoformat()
        seen: set[str] = set()
        categories: dict[str, str] = {}
        candidates: list[SearchCandidate] = []

        for category, topics in CATEGORY_TOPICS.items():
            for topic in topics:
                query = f"topic:{topic} created:>{since} stars:>{self.min_stars}"
                results = await self._github.search_repositories(
                    query, per_page=self.per_topic
                )
                for candidate in results:
                    if candidate.is_fork or not candidate.description:
                        continue
                    if candidate.full_name in seen:
                        continue
                    seen.add(candidate.full_name)
                    categories[candidate.full_name] = category
                    candidates.append(candidate)

        candidates.sort(key=lambda candidate: candidate.stars, reverse=True)
        return candidates, categories

    async def choose(self, candidates: list[SearchCandidate]) -> SearchCandidate | None:
        for candidate in candidates:
            if not await self._projects.exists(candidate.full_name):
                return candidate
            logger.debug("daily_skip_existing", full_name=candidate.full_name)
        return None

    async def run(
        self, *, skip_notify: bool = False, skip_publish: bool = False
    ) -> DailyPickResult | None:
        """Run the whole pipeline once.

        Args:
            skip_notify: Do not open an issue on the chosen repository.
            skip_publish: Do not publish the newsletter post.

        Returns:
            The result, or ``None`` if there was nothing new to feature.

        Raises:
            WriteupError: If the writeup cannot be generated.
            PublishError: If publishing fails (the project stays stored).
        """
        candidates, categories = await self.gather_candidates()
        logger.info("daily_candidates", count=len(candidates))
        if not candidates:
            return None

        chosen = await self.choose(candidates)
        if chosen is None:
            logger.info("daily_nothing_new", candidates=len(candidates))
            return None

        category = categories.get(chosen.full_name, self.default_category)
        logger.info(
            "daily_selected",
            full_name=chosen.full_name,
            stars=chosen.stars,
            category=category,
        )

        owner, _, name = chosen.full_name.partition("/")
        readme = await self._github.fetch_readme(
            owner, name, max_chars=self.readme_max_chars
        )
        metadata = await self._github.fetch_repository(owner, name)
        subject = SearchCandidate.from_github(metadata) if metadata else chosen
        generated = await self._writer.generate(subject, readme)

        project = Project.from_candidate(chosen, category, ProjectSource.AUTO)
        project = project.model_copy(
            update={
                "writeup": generated.writeup,
                "quick_start": list(generated.quick_start),
                "auto_added_date": self._now().date(),
            }
        )
        project = await self._projects.add(project)
        logger.info("daily_project_stored", full_name=project.full_name, id=project.id)

        result = DailyPickResult(project=project, candidates=len(candidates))

        if skip_notify:
            logger.info("daily_notify_skipped")
        else:
            result.notified_issue = await self._github.notify_owner(
                project, self.site_url
            )

        if skip_publish or self._publisher is None:
            logger.info("daily_publish_skipped", configured=self._publisher is not None)
        else:
            post = build_daily_post(
                project, generated.writeup, generated.quick_start, self.site_url
            )
            await self._publisher.publish(post)
            result.published = True

        return result
