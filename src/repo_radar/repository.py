"""Typed access to project records in the document store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from repo_radar.models import Project
from repo_radar.snapshots import PROJECTS_COLLECTION

if TYPE_CHECKING:
    from repo_radar.store import DocumentStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


class ProjectRepository:
    """Validates project documents on the way in and out of the store."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def list_all(self) -> list[Project]:
        """Return every valid project; invalid documents are logged and skipped."""
        rows = await self._store.query(PROJECTS_COLLECTION)
        projects: list[Project] = []
        for doc_id, data in rows:
            try:
                projects.append(Project.from_document(doc_id, data))
            except ValidationError as exc:
                logger.warning(
                    "project_document_invalid",
                    doc_id=doc_id,
                    errors=exc.error_count(),
                    error=str(exc),
                )
        return projects

    async def full_names(self) -> set[str]:
        """Return every stored ``full_name`` using a field-selection query."""
        rows = await self._store.select(PROJECTS_COLLECTION, ["full_name"])
        return {str(data["full_name"]) for _, data in rows if data.get("full_name")}

    async def get(self, project_id: str) -> Project | None:
        data = await self._store.get(PROJECTS_COLLECTION, project_id)
        if data is None:
            return None
        return Project.from_document(project_id, data)

    async def find_by_full_name(self, full_name: str) -> Project | None:
        rows = await self._store.query(
            PROJECTS_COLLECTION,
            where=[("full_name", "==", full_name)],
            limit=1,
        )
        if not rows:
            return None
        doc_id, data = rows[0]
        return Project.from_document(doc_id, data)

    async def exists(self, full_name: str) -> bool:
        return await self.find_by_full_name(full_name) is not None

    async def add(self, project: Project) -> Project:
        """Insert a new project and return it with its assigned id."""
        doc_id = await self._store.add(PROJECTS_COLLECTION, project.to_document())
        return project.model_copy(update={"id": doc_id})

    async def merge(self, project_id: str, fields: dict[str, Any]) -> None:
        """Apply a partial update (merge semantics) to one project."""
        await self._store.update(PROJECTS_COLLECTION, project_id, fields)

    async def set_embeddings(
        self, project_id: str, embeddings: dict[str, list[float]]
    ) -> None:
        """Merge provider-qualified vectors into the project's embeddings map."""
        project = await self.get(project_id)
        current = dict(project.embeddings) if project is not None else {}
        current.update(embeddings)
        await self.merge(project_id, {"embeddings": current})
