"""Daily snapshot collection and momentum refresh for every tracked project.

Projects are processed in fixed-size batches. Within a batch every
project runs concurrently; the batch is fully joined (store writes
included) before the next one starts, with a short courtesy delay in
between. Each project yields exactly one outcome, so one project's
failure never aborts its batch or the run. A separate pass then prunes
snapshots older than the retention window.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from repo_radar.models import CollectionSummary, Snapshot
from repo_radar.momentum import compute_momentum
from repo_radar.snapshots import SnapshotStore

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from repo_radar.config import CollectorSettings
    from repo_radar.github import GitHubClient
    from repo_radar.models import Project
    from repo_radar.repository import ProjectRepository

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_DEFAULT_BATCH_SIZE = 30
_DEFAULT_BATCH_DELAY = 1.0
_DEFAULT_SNAPSHOT_WINDOW = 8
_DEFAULT_RETENTION_DAYS = 90


class Outcome(StrEnum):
    """Result of processing one project."""

    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


def batched(items: Sequence[Project], size: int) -> list[list[Project]]:
    """Split ``items`` into consecutive batches of at most ``size``."""
    if size <= 0:
        raise ValueError(f"batch size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class SnapshotCollector:
    """Samples current metrics for every project and refreshes trend fields.

    Attributes:
        batch_size: Projects processed concurrently per batch.
        batch_delay: Seconds to sleep between batches.
        snapshot_window: Snapshots read back for momentum scoring.
        retention_days: Snapshots older than this many days are pruned.
    """

    def __init__(
        self,
        projects: ProjectRepository,
        snapshots: SnapshotStore,
        fetcher: GitHubClient,
        *,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        batch_delay: float = _DEFAULT_BATCH_DELAY,
        snapshot_window: int = _DEFAULT_SNAPSHOT_WINDOW,
        retention_days: int = _DEFAULT_RETENTION_DAYS,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._projects = projects
        self._snapshots = snapshots
        self._fetcher = fetcher
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.snapshot_window = snapshot_window
        self.retention_days = retention_days
        self._now = now or (lambda: datetime.now(tz=UTC))

    @classmethod
    def from_settings(
        cls,
        settings: CollectorSettings,
        projects: ProjectRepository,
        snapshots: SnapshotStore,
        fetcher: GitHubClient,
    ) -> SnapshotCollector:
        return cls(
            projects,
            snapshots,
            fetcher,
            batch_size=settings.batch_size,
            batch_delay=settings.batch_delay_seconds,
            snapshot_window=settings.snapshot_window,
            retention_days=settings.retention_days,
        )

    async def collect(self) -> CollectionSummary:
        """Run one full collection pass.

        Returns:
            Aggregate processed/failed/skipped/pruned counts.

        Raises:
            Exception: Only if the project list itself cannot be read.
        """
        projects = await self._projects.list_all()
        batches = batched(projects, self.batch_size)
        logger.info(
            "collection_start",
            projects=len(projects),
            batches=len(batches),
            batch_size=self.batch_size,
        )

        summary = CollectionSummary()
        for index, batch in enumerate(batches):
            results = await asyncio.gather(
                *(self._process(project) for project in batch),
                return_exceptions=True,
            )
            for project, result in zip(batch, results, strict=True):
                if isinstance(result, Exception):
                    logger.error(
                        "collect_task_crashed",
                        full_name=project.full_name,
                        error=repr(result),
                    )
                    summary.failed += 1
                elif isinstance(result, BaseException):
                    raise result
                elif result is Outcome.PROCESSED:
                    summary.processed += 1
                elif result is Outcome.FAILED:
                    summary.failed += 1
                else:
                    summary.skipped += 1

            logger.debug(
                "batch_complete",
                batch=index + 1,
                of=len(batches),
                processed=summary.processed,
                failed=summary.failed,
            )
            if index < len(batches) - 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        summary.pruned = await self.prune(projects)

        logger.info(
            "collection_complete",
            processed=summary.processed,
            failed=summary.failed,
            skipped=summary.skipped,
            pruned=summary.pruned,
        )
        return summary

    async def _process(self, project: Project) -> Outcome:
        """Snapshot, score, and update one project; never raises ``Exception``."""
        parts = project.split_full_name()
        if parts is None:
            logger.debug("collect_skip_malformed", full_name=project.full_name)
            return Outcome.SKIPPED
        owner, name = parts

        try:
            metrics = await self._fetcher.fetch_metrics(owner, name)
            if metrics is None:
                return Outcome.SKIPPED

            now = self._now()
            await self._snapshots.upsert(
                project.id,
                Snapshot(
                    date=now.date(),
                    stars=metrics.stars,
                    forks=metrics.forks,
                    open_issues=metrics.open_issues,
                    captured_at=now,
                ),
            )

            recent = await self._snapshots.recent(project.id, self.snapshot_window)
            result = compute_momentum(recent)

            await self._projects.merge(
                project.id,
                {
                    **result.to_project_fields(),
                    "stars": metrics.stars,
                    "forks": metrics.forks,
                    "open_issues": metrics.open_issues,
                    "trend_updated_at": now.isoformat(),
                },
            )
        except Exception as exc:
            logger.warning(
                "collect_project_failed",
                full_name=project.full_name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return Outcome.FAILED

        logger.debug(
            "collect_project_ok",
            full_name=project.full_name,
            momentum=result.momentum,
            label=result.label.value,
        )
        return Outcome.PROCESSED

    async def prune(self, projects: Sequence[Project]) -> int:
        """Delete snapshots older than the retention window for every project."""
        cutoff = SnapshotStore.retention_cutoff(self._now().date(), self.retention_days)
        pruned = 0
        for project in projects:
            try:
                pruned += await self._snapshots.prune(project.id, cutoff)
            except Exception as exc:
                logger.warning(
                    "prune_project_failed",
                    full_name=project.full_name,
                    error=str(exc),
                )
        return pruned
