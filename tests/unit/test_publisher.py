"""Unit tests for repo_radar.publisher."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from repo_radar.config import PublishSettings
from repo_radar.exceptions import PublishError
from repo_radar.models import Project
from repo_radar.publisher import Post, WebhookPublisher, build_daily_post

_URL = "https://hooks.example.com/posts"


def _publisher(token: str | None = None) -> WebhookPublisher:
    return WebhookPublisher(
        _URL,
        httpx.AsyncClient(),
        token=token,
        attempts=3,
        backoff_min=0,
        backoff_max=0,
    )


class TestBuildDailyPost:
    def test_structure(self) -> None:
        project = Project(
            full_name="acme/rocket",
            name="rocket",
            description="Launches things",
            url="https://github.com/acme/rocket",
        )
        post = build_daily_post(
            project,
            "First paragraph.\n\nSecond paragraph.\n\n",
            ["pip install rocket", "rocket launch"],
            site_url="https://example.com",
        )

        assert post.title == "Project of the Day: rocket"
        assert post.subtitle == "Launches things"
        assert post.sections[0].paragraphs == ["First paragraph.", "Second paragraph."]
        assert post.sections[1].heading == "Quick Start"
        assert post.sections[1].items == ["pip install rocket", "rocket launch"]
        assert post.source_url == "https://github.com/acme/rocket"
        assert post.footer.endswith("https://example.com")

    def test_title_falls_back_to_full_name(self) -> None:
        post = build_daily_post(Project(full_name="acme/rocket"), "text", ["step"])
        assert post.title == "Project of the Day: acme/rocket"


class TestWebhookPublisher:
    """publish retries transient failures and surfaces permanent ones."""

    @pytest.mark.asyncio()
    @respx.mock
    async def test_success_sends_json_and_token(self) -> None:
        route = respx.post(_URL).mock(return_value=httpx.Response(201))

        await _publisher(token="secret").publish(Post(title="Hello"))

        assert route.call_count == 1
        request = route.calls.last.request
        assert request.headers["authorization"] == "Bearer secret"
        assert json.loads(request.content)["title"] == "Hello"

    @pytest.mark.asyncio()
    @respx.mock
    async def test_retries_server_errors(self) -> None:
        route = respx.post(_URL).mock(
            side_effect=[
                httpx.Response(503),
                httpx.Response(502),
                httpx.Response(200),
            ]
        )
        await _publisher().publish(Post(title="Hello"))
        assert route.call_count == 3

    @pytest.mark.asyncio()
    @respx.mock
    async def test_exhausted_retries_raise(self) -> None:
        route = respx.post(_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(PublishError, match="after 3 attempts"):
            await _publisher().publish(Post(title="Hello"))
        assert route.call_count == 3

    @pytest.mark.asyncio()
    @respx.mock
    async def test_client_error_is_not_retried(self) -> None:
        route = respx.post(_URL).mock(
            return_value=httpx.Response(401, text="bad token")
        )

        with pytest.raises(PublishError, match="rejected"):
            await _publisher().publish(Post(title="Hello"))
        assert route.call_count == 1

    def test_from_settings_without_webhook(self) -> None:
        assert (
            WebhookPublisher.from_settings(PublishSettings(), httpx.AsyncClient())
            is None
        )

    def test_from_settings(self) -> None:
        publisher = WebhookPublisher.from_settings(
            PublishSettings(webhook_url=_URL, attempts=5), httpx.AsyncClient()
        )
        assert publisher is not None
        assert publisher.url == _URL
        assert publisher.attempts == 5
