"""Per-project daily snapshot history with retention pruning."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import structlog

from repo_radar.models import Snapshot

if TYPE_CHECKING:
    from datetime import date

    from repo_radar.store import DocumentStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

PROJECTS_COLLECTION = "projects"


def snapshot_collection(project_id: str) -> str:
    """Return the child collection path holding a project's snapshots."""
    return f"{PROJECTS_COLLECTION}/{project_id}/snapshots"


class SnapshotStore:
    """Append-only daily records keyed by ISO date under each project.

    The document id is the snapshot's ISO date, so writing the same
    (project, date) twice overwrites instead of duplicating.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def upsert(self, project_id: str, snapshot: Snapshot) -> None:
        await self._store.set(
            snapshot_collection(project_id),
            snapshot.date.isoformat(),
            snapshot.model_dump(mode="json"),
        )

    async def recent(self, project_id: str, limit: int) -> list[Snapshot]:
        """Return up to ``limit`` snapshots, newest first."""
        rows = await self._store.query(
            snapshot_collection(project_id),
            order_by="date",
            descending=True,
            limit=limit,
        )
        return [Snapshot.model_validate(data) for _, data in rows]

    async def prune(self, project_id: str, cutoff: date) -> int:
        """Delete snapshots dated strictly before ``cutoff``.

        Returns:
            Number of snapshots removed.
        """
        collection = snapshot_collection(project_id)
        stale = await self._store.query(
            collection,
            where=[("date", "<", cutoff.isoformat())],
        )
        for doc_id, _ in stale:
            await self._store.delete(collection, doc_id)
        if stale:
            logger.debug(
                "snapshots_pruned",
                project_id=project_id,
                cutoff=cutoff.isoformat(),
                count=len(stale),
            )
        return len(stale)

    @staticmethod
    def retention_cutoff(today: date, retention_days: int) -> date:
        return today - timedelta(days=retention_days)
