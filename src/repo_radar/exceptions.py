"""Centralized exception hierarchy for the repo-radar package.

All domain-specific exceptions inherit from ``RepoRadarError`` so
callers can catch the entire family with a single ``except`` clause.
"""

from __future__ import annotations


class RepoRadarError(Exception):
    """Base exception for all repo-radar errors."""


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------


class StorageError(RepoRadarError):
    """Base exception for document store operations."""


class DocumentNotFoundError(StorageError):
    """Raised when a partial update targets a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {doc_id!r} not found in {collection!r}")
        self.collection = collection
        self.doc_id = doc_id


# ---------------------------------------------------------------------------
# Embedding errors
# ---------------------------------------------------------------------------


class EmbeddingError(RepoRadarError):
    """Raised when an embedding operation fails.

    When raised after a fallback chain is exhausted, ``failures`` maps each
    attempted provider name to the error message it produced.
    """

    def __init__(self, message: str, failures: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.failures = dict(failures or {})


# ---------------------------------------------------------------------------
# Daily pick errors
# ---------------------------------------------------------------------------


class WriteupError(RepoRadarError):
    """Raised when a generated writeup cannot be parsed or has the wrong shape."""


class PublishError(RepoRadarError):
    """Raised when a post cannot be delivered to the publishing sink."""


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(RepoRadarError):
    """Raised when a required credential or setting is missing."""
