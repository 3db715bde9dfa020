"""Newsletter publishing for the project of the day.

A ``Post`` is a structured document (title, subtitle, sections, source
link) rather than pre-rendered text, so any sink can lay it out.
``WebhookPublisher`` delivers it as JSON to a configured endpoint, with
tenacity retries on transport errors and 5xx responses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import BaseModel, Field
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from repo_radar.exceptions import PublishError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from repo_radar.config import PublishSettings
    from repo_radar.models import Project

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_BACKOFF_MIN_SECONDS = 1
_BACKOFF_MAX_SECONDS = 10


# ---------------------------------------------------------------------------
# Post model
# ---------------------------------------------------------------------------


class PostSection(BaseModel):
    """One block of a post: an optional heading plus paragraphs and/or items."""

    heading: str | None = None
    paragraphs: list[str] = Field(default_factory=list)
    items: list[str] = Field(
        default_factory=list, description="Ordered list entries."
    )


class Post(BaseModel):
    """A publishable newsletter post."""

    title: str
    subtitle: str = ""
    sections: list[PostSection] = Field(default_factory=list)
    source_url: str = ""
    footer: str = ""


def build_daily_post(
    project: Project,
    writeup: str,
    quick_start: Sequence[str],
    site_url: str = "https://aidigitalcrew.com",
) -> Post:
    """Assemble the "Project of the Day" post for ``project``."""
    paragraphs = [block.strip() for block in writeup.split("\n\n") if block.strip()]
    return Post(
        title=f"Project of the Day: {project.name or project.full_name}",
        subtitle=project.description,
        sections=[
            PostSection(paragraphs=paragraphs),
            PostSection(heading="Quick Start", items=list(quick_start)),
        ],
        source_url=project.url,
        footer=f"Auto-discovered by AI Digital Crew, {site_url}",
    )


# ---------------------------------------------------------------------------
# Webhook sink
# ---------------------------------------------------------------------------


class _RetryableStatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"server returned {status_code}")
        self.status_code = status_code


class WebhookPublisher:
    """POSTs posts as JSON to a webhook endpoint."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient,
        *,
        token: str | None = None,
        attempts: int = 3,
        backoff_min: float = _BACKOFF_MIN_SECONDS,
        backoff_max: float = _BACKOFF_MAX_SECONDS,
    ) -> None:
        self.url = url
        self._client = client
        self._token = token
        self.attempts = attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

    @classmethod
    def from_settings(
        cls, settings: PublishSettings, client: httpx.AsyncClient
    ) -> WebhookPublisher | None:
        """Return a publisher, or ``None`` when no webhook is configured."""
        if not settings.webhook_url:
            return None
        return cls(
            settings.webhook_url,
            client,
            token=settings.token,
            attempts=settings.attempts,
        )

    async def publish(self, post: Post) -> None:
        """Deliver ``post``.

        Raises:
            PublishError: On a 4xx response, or once every retry of a
                transport error / 5xx response is exhausted.
        """

        @retry(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatusError)),
            reraise=False,
        )
        async def _send() -> httpx.Response:
            response = await self._client.post(
                self.url, json=post.model_dump(mode="json"), headers=self._headers()
            )
            if response.status_code >= 500:
                raise _RetryableStatusError(response.status_code)
            return response

        try:
            response = await _send()
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            raise PublishError(
                f"Publishing failed after {self.attempts} attempts: {cause}"
            ) from cause

        if not response.is_success:
            raise PublishError(
                f"Publishing rejected ({response.status_code}): {response.text[:200]}"
            )
        logger.info("post_published", title=post.title, status=response.status_code)

    def _headers(self) -> dict[str, str]:
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}
