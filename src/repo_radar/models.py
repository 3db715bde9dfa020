"""Typed records for tracked repositories, snapshots, and job summaries.

Documents live in the store as plain JSON dicts; these models validate
them at the storage boundary so the rest of the package works with
explicit fields instead of loosely-shaped dicts.
"""

from __future__ import annotations

import datetime as dt
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TrendLabel(StrEnum):
    """Categorical momentum bucket."""

    HOT = "hot"
    RISING = "rising"
    STEADY = "steady"
    DECLINING = "declining"
    NEW = "new"


class ProjectSource(StrEnum):
    """How a project entered the store."""

    AUTO = "auto"
    DISCOVERY = "discovery"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Metrics provider payloads
# ---------------------------------------------------------------------------


class RepoMetrics(BaseModel):
    """Current counters for one repository as reported by the metrics provider."""

    stars: int = Field(default=0, ge=0)
    forks: int = Field(default=0, ge=0)
    open_issues: int = Field(default=0, ge=0)


class SearchCandidate(BaseModel):
    """A repository returned by the search provider."""

    full_name: str
    name: str = ""
    owner: str = ""
    owner_avatar: str = ""
    url: str = ""
    description: str = ""
    stars: int = Field(default=0, ge=0)
    forks: int = Field(default=0, ge=0)
    open_issues: int = Field(default=0, ge=0)
    language: str = ""
    topics: list[str] = Field(default_factory=list)
    is_fork: bool = False

    @classmethod
    def from_github(cls, item: dict[str, Any]) -> SearchCandidate:
        """Build a candidate from a GitHub ``/search/repositories`` item."""
        owner = item.get("owner") or {}
        topics = item.get("topics") or []
        return cls(
            full_name=str(item.get("full_name", "")),
            name=str(item.get("name", "")),
            owner=str(owner.get("login", "")),
            owner_avatar=str(owner.get("avatar_url", "")),
            url=str(item.get("html_url", "")),
            description=str(item.get("description") or ""),
            stars=int(item.get("stargazers_count", 0) or 0),
            forks=int(item.get("forks_count", 0) or 0),
            open_issues=int(item.get("open_issues_count", 0) or 0),
            language=str(item.get("language") or ""),
            topics=[str(topic) for topic in topics if isinstance(topic, str)],
            is_fork=bool(item.get("fork", False)),
        )


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


class Snapshot(BaseModel):
    """One calendar-day metrics sample for one project."""

    date: dt.date
    stars: int = Field(default=0, ge=0)
    forks: int = Field(default=0, ge=0)
    open_issues: int = Field(default=0, ge=0)
    captured_at: datetime = Field(default_factory=utc_now)


class Project(BaseModel):
    """A tracked repository record."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default="", description="Document store identifier.")
    full_name: str = Field(description="owner/name, globally unique.")
    name: str = ""
    owner: str = ""
    owner_avatar: str = ""
    description: str = ""
    url: str = ""
    language: str = ""
    topics: list[str] = Field(default_factory=list)
    category: str = "Other"
    source: ProjectSource = ProjectSource.DISCOVERY

    stars: int = Field(default=0, ge=0)
    forks: int = Field(default=0, ge=0)
    open_issues: int = Field(default=0, ge=0)

    writeup: str | None = None
    quick_start: list[str] = Field(default_factory=list)
    auto_added_date: dt.date | None = None

    trend_stars_7d: int | None = None
    trend_stars_pct_7d: float | None = None
    trend_forks_7d: int | None = None
    trend_momentum: float | None = None
    trend_label: TrendLabel | None = None
    trend_sparkline: list[int] = Field(default_factory=list)
    trend_updated_at: datetime | None = None

    embeddings: dict[str, list[float]] = Field(
        default_factory=dict,
        description="Provider-qualified vectors, e.g. ``embedding_gemini``.",
    )
    created_at: datetime = Field(default_factory=utc_now)

    def split_full_name(self) -> tuple[str, str] | None:
        """Return ``(owner, name)`` or ``None`` if the identifier is malformed."""
        parts = self.full_name.split("/")
        if len(parts) != 2 or not all(part.strip() for part in parts):
            return None
        return parts[0], parts[1]

    def to_document(self) -> dict[str, Any]:
        """Serialize for the document store (the id is the document key)."""
        return self.model_dump(mode="json", exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> Project:
        return cls.model_validate({**data, "id": doc_id})

    @classmethod
    def from_candidate(
        cls,
        candidate: SearchCandidate,
        category: str,
        source: ProjectSource,
    ) -> Project:
        return cls(
            full_name=candidate.full_name,
            name=candidate.name,
            owner=candidate.owner,
            owner_avatar=candidate.owner_avatar,
            description=candidate.description,
            url=candidate.url,
            language=candidate.language,
            topics=list(candidate.topics),
            category=category,
            source=source,
            stars=candidate.stars,
            forks=candidate.forks,
            open_issues=candidate.open_issues,
        )


# ---------------------------------------------------------------------------
# Derived results
# ---------------------------------------------------------------------------


class MomentumResult(BaseModel):
    """Trend fields derived from a project's recent snapshots."""

    stars_7d: int | None = None
    stars_pct_7d: float | None = None
    forks_7d: int | None = None
    momentum: float = Field(default=0.0, ge=0.0, le=100.0)
    label: TrendLabel = TrendLabel.NEW
    sparkline: list[int] = Field(default_factory=list)

    def to_project_fields(self) -> dict[str, Any]:
        """Return the ``trend_*`` merge fields, omitting values never computed."""
        fields: dict[str, Any] = {
            "trend_momentum": self.momentum,
            "trend_label": self.label.value,
        }
        if self.stars_7d is not None:
            fields["trend_stars_7d"] = self.stars_7d
        if self.stars_pct_7d is not None:
            fields["trend_stars_pct_7d"] = self.stars_pct_7d
        if self.forks_7d is not None:
            fields["trend_forks_7d"] = self.forks_7d
        if self.sparkline:
            fields["trend_sparkline"] = list(self.sparkline)
        return fields


class CollectionSummary(BaseModel):
    """Aggregate counts from one snapshot collection run."""

    processed: int = 0
    failed: int = 0
    skipped: int = 0
    pruned: int = 0


class DiscoverySummary(BaseModel):
    """Aggregate counts from one discovery run."""

    added_ai: int = 0
    added_global: int = 0
    skipped_existing: int = 0
    queries_run: int = 0

    @property
    def added(self) -> int:
        return self.added_ai + self.added_global


class BackfillSummary(BaseModel):
    """Aggregate counts from one embedding backfill run."""

    updated: int = 0
    skipped: int = 0
    failed: int = 0
