"""Typer CLI entry point for repo-radar."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import httpx
import structlog
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from repo_radar import __version__
from repo_radar.api.server import run_server
from repo_radar.collector import SnapshotCollector
from repo_radar.config import Settings, format_validation_error
from repo_radar.daily import DailyPickPipeline, DailyPickResult
from repo_radar.discovery import DiscoveryEngine
from repo_radar.embeddings import EmbeddingRouter, backfill_embeddings
from repo_radar.exceptions import ConfigurationError
from repo_radar.github import GitHubClient
from repo_radar.logging import configure_logging, generate_run_id, job_logging_context
from repo_radar.publisher import WebhookPublisher
from repo_radar.repository import ProjectRepository
from repo_radar.snapshots import SnapshotStore
from repo_radar.store import JsonDocumentStore
from repo_radar.writeup import WriteupGenerator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from repo_radar.models import BackfillSummary, CollectionSummary, DiscoverySummary

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="repo-radar",
    help="Trending repository discovery, momentum tracking, and daily picks.",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config YAML file."),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose logging."),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(
    config_path: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Load settings with error handling and user-friendly messages."""
    try:
        return Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc


def _prepare(config_path: Path | None, verbose: bool) -> Settings:
    overrides: dict[str, Any] = {}
    if verbose:
        overrides["logging"] = {"level": "DEBUG"}
    settings = _load_settings(config_path, **overrides)
    configure_logging(
        level=settings.logging.level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
        run_id=generate_run_id(),
    )
    return settings


def _display_error(exc: Exception, job: str) -> None:
    err_console.print(
        Panel(
            f"[red bold]{job} failed[/red bold]\n\n{type(exc).__name__}: {exc}",
            title="Error",
            border_style="red",
        )
    )


def _summary_table(title: str, rows: dict[str, Any]) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in rows.items():
        table.add_row(key, str(value))
    return table


def _run_job(job: str, coro: Any) -> Any:
    """Run one async job to completion, turning failures into exit code 1."""
    try:
        return asyncio.run(coro)
    except Exception as exc:
        _display_error(exc, job)
        raise typer.Exit(code=1) from exc


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Services:
    """Collaborators shared by one job run."""

    settings: Settings
    store: JsonDocumentStore
    http: httpx.AsyncClient
    github: GitHubClient
    projects: ProjectRepository


@asynccontextmanager
async def open_services(settings: Settings) -> AsyncIterator[Services]:
    """Open the store and HTTP client; flush and close them on exit."""
    store = JsonDocumentStore(settings.store.path)
    http = httpx.AsyncClient(timeout=httpx.Timeout(settings.http.timeout))
    github = GitHubClient.from_settings(settings, client=http)
    try:
        yield Services(
            settings=settings,
            store=store,
            http=http,
            github=github,
            projects=ProjectRepository(store),
        )
    finally:
        try:
            await store.flush()
        finally:
            await http.aclose()


async def _collect(settings: Settings) -> CollectionSummary:
    async with open_services(settings) as services:
        collector = SnapshotCollector.from_settings(
            settings.collector,
            services.projects,
            SnapshotStore(services.store),
            services.github,
        )
        with job_logging_context("collect"):
            summary = await collector.collect()
            logger.info("rate_limit_status", **services.github.rate_limit.stats())
            return summary


async def _discover(settings: Settings) -> DiscoverySummary:
    async with open_services(settings) as services:
        engine = DiscoveryEngine.from_settings(
            settings.discovery,
            services.projects,
            services.github,
            per_page=settings.github.per_page,
        )
        with job_logging_context("discover"):
            return await engine.discover()


async def _daily(
    settings: Settings, *, skip_notify: bool, skip_publish: bool
) -> DailyPickResult | None:
    if not settings.github.token:
        raise ConfigurationError(
            "The daily pick needs a GitHub token (set REPO_RADAR_GITHUB__TOKEN)"
        )
    async with open_services(settings) as services:
        pipeline = DailyPickPipeline.from_settings(
            settings.daily,
            services.projects,
            services.github,
            WriteupGenerator.from_settings(settings.writeup),
            WebhookPublisher.from_settings(settings.publish, services.http),
            site_url=settings.publish.site_url,
        )
        with job_logging_context("daily", skip_notify=skip_notify):
            return await pipeline.run(
                skip_notify=skip_notify, skip_publish=skip_publish
            )


async def _backfill(settings: Settings, *, force: bool) -> BackfillSummary:
    async with open_services(settings) as services:
        router = EmbeddingRouter.from_settings(settings.embedding, services.http)
        with job_logging_context("backfill_embeddings", force=force):
            return await backfill_embeddings(services.projects, router, force=force)


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]repo-radar[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """repo-radar global options."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def collect(config: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Snapshot every tracked project and refresh its momentum."""
    settings = _prepare(config, verbose)
    summary: CollectionSummary = _run_job("Collection", _collect(settings))
    console.print(_summary_table("Collection", summary.model_dump()))


@app.command()
def discover(config: ConfigOption = None, verbose: VerboseOption = False) -> None:
    """Search for new repositories and start tracking them."""
    settings = _prepare(config, verbose)
    summary: DiscoverySummary = _run_job("Discovery", _discover(settings))
    console.print(
        _summary_table("Discovery", {**summary.model_dump(), "added": summary.added})
    )


@app.command()
def daily(
    config: ConfigOption = None,
    skip_notify: Annotated[
        bool,
        typer.Option(
            "--skip-notify",
            envvar="REPO_RADAR_SKIP_NOTIFY",
            help="Do not open an issue on the chosen repository.",
        ),
    ] = False,
    skip_publish: Annotated[
        bool,
        typer.Option(
            "--skip-publish",
            envvar="REPO_RADAR_SKIP_PUBLISH",
            help="Do not publish the newsletter post.",
        ),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Pick, write up, and announce the project of the day."""
    settings = _prepare(config, verbose)
    result: DailyPickResult | None = _run_job(
        "Daily pick",
        _daily(settings, skip_notify=skip_notify, skip_publish=skip_publish),
    )
    if result is None:
        console.print("[yellow]No new project to feature today.[/yellow]")
        return

    project = result.project
    console.print(
        Panel(
            f"[bold]{project.full_name}[/bold] ({project.stars} stars)\n"
            f"Category: {project.category}\n"
            f"Candidates considered: {result.candidates}\n"
            f"Owner notified: {result.notified_issue or 'no'}\n"
            f"Published: {'yes' if result.published else 'no'}",
            title="Project of the Day",
            border_style="green",
        )
    )


@app.command(name="backfill-embeddings")
def backfill_embeddings_cmd(
    config: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Re-embed projects that already have vectors."),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Generate missing provider embeddings for every project."""
    settings = _prepare(config, verbose)
    summary: BackfillSummary = _run_job(
        "Embedding backfill", _backfill(settings, force=force)
    )
    console.print(_summary_table("Embedding backfill", summary.model_dump()))


@app.command()
def serve(
    port: Annotated[
        int,
        typer.Option("--port", help="Port to bind the FastAPI server."),
    ] = 8000,
    host: Annotated[
        str,
        typer.Option("--host", help="Host/interface to bind the FastAPI server."),
    ] = "0.0.0.0",
    config: ConfigOption = None,
) -> None:
    """Run the repo-radar FastAPI server."""
    settings = _load_settings(config, api={"port": port, "host": host})
    configure_logging(
        level=settings.logging.level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
    )
    run_server(settings)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
