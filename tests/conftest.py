"""Shared pytest fixtures for the repo-radar test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from repo_radar.models import Project
from repo_radar.repository import ProjectRepository
from repo_radar.snapshots import SnapshotStore
from repo_radar.store import JsonDocumentStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


@pytest.fixture()
def store() -> JsonDocumentStore:
    return JsonDocumentStore()


@pytest.fixture()
def projects(store: JsonDocumentStore) -> ProjectRepository:
    return ProjectRepository(store)


@pytest.fixture()
def snapshots(store: JsonDocumentStore) -> SnapshotStore:
    return SnapshotStore(store)


@pytest.fixture()
def add_project(
    projects: ProjectRepository,
) -> Callable[..., Awaitable[Project]]:
    """Return an async helper that inserts a project and returns it with its id."""

    async def _add(full_name: str, **fields: Any) -> Project:
        owner, _, name = full_name.partition("/")
        fields.setdefault("owner", owner)
        fields.setdefault("name", name)
        project = Project(full_name=full_name, **fields)
        return await projects.add(project)

    return _add
