"""Document store interface and a JSON-backed implementation.

The pipeline only needs collection-style access: upsert by id, point
reads, ordered/filtered queries with a limit, field selection, partial
(merge) updates, and deletes. ``DocumentStore`` names that surface so a
hosted document database can be swapped in; ``JsonDocumentStore`` keeps
everything in memory and persists to a single JSON file on ``flush()``.

Collections are addressed by slash-separated paths, so a project's
snapshots live under ``projects/<project_id>/snapshots``.
"""

from __future__ import annotations

import asyncio
import copy
import json
import operator
import uuid
from typing import TYPE_CHECKING, Any, Literal, Protocol

import structlog

from repo_radar.exceptions import DocumentNotFoundError, StorageError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

FilterOp = Literal["==", "!=", "<", "<=", ">", ">="]
Filter = tuple[str, FilterOp, Any]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class DocumentStore(Protocol):
    """Async collection-style document storage."""

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        *,
        merge: bool = False,
    ) -> None: ...

    async def add(self, collection: str, data: dict[str, Any]) -> str: ...

    async def update(
        self, collection: str, doc_id: str, fields: dict[str, Any]
    ) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    async def query(
        self,
        collection: str,
        *,
        where: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, dict[str, Any]]]: ...

    async def select(
        self, collection: str, fields: Sequence[str]
    ) -> list[tuple[str, dict[str, Any]]]: ...


def _matches(data: dict[str, Any], where: Sequence[Filter]) -> bool:
    for field, op, value in where:
        if field not in data:
            return False
        try:
            if not _OPERATORS[op](data[field], value):
                return False
        except TypeError:
            return False
    return True


class JsonDocumentStore:
    """In-memory document store with optional JSON file persistence.

    Reads are served from memory. When ``path`` is given the file is
    loaded on construction and rewritten by ``flush()``; callers flush
    once at the end of a job (the CLI does this in a ``finally`` block).
    Returned documents are deep copies, so callers never alias stored state.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._collections = self._load(path)

    @staticmethod
    def _load(path: Path) -> dict[str, dict[str, dict[str, Any]]]:
        if not path.exists():
            return {}
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Cannot read document store {path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise StorageError(f"Document store {path} is not a JSON object")
        return payload

    async def flush(self) -> None:
        """Persist every collection to the backing JSON file (no-op in memory)."""
        if self._path is None:
            return
        async with self._lock:
            serialized = json.dumps(self._collections, indent=2, sort_keys=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp_path.write_text(serialized, encoding="utf-8")
            tmp_path.replace(self._path)
        logger.debug("store_flushed", path=str(self._path))

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        docs = self._collection(collection)
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(data))
        else:
            docs[doc_id] = copy.deepcopy(data)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        await self.set(collection, doc_id, data)
        return doc_id

    async def update(
        self, collection: str, doc_id: str, fields: dict[str, Any]
    ) -> None:
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise DocumentNotFoundError(collection, doc_id)
        docs[doc_id].update(copy.deepcopy(fields))

    async def delete(self, collection: str, doc_id: str) -> None:
        self._collections.get(collection, {}).pop(doc_id, None)

    async def query(
        self,
        collection: str,
        *,
        where: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[tuple[str, dict[str, Any]]]:
        docs = self._collections.get(collection, {})
        rows = [
            (doc_id, data) for doc_id, data in docs.items() if _matches(data, where)
        ]
        if order_by is not None:
            rows = [row for row in rows if order_by in row[1]]
            rows.sort(key=lambda row: row[1][order_by], reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return [(doc_id, copy.deepcopy(data)) for doc_id, data in rows]

    async def select(
        self, collection: str, fields: Sequence[str]
    ) -> list[tuple[str, dict[str, Any]]]:
        docs = self._collections.get(collection, {})
        selected: list[tuple[str, dict[str, Any]]] = []
        for doc_id, data in docs.items():
            picked = {field: data[field] for field in fields if field in data}
            selected.append((doc_id, copy.deepcopy(picked)))
        return selected
