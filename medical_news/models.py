"""Persisted records for the headline → research → article pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class HeadlineStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    RESEARCHED = "researched"
    GENERATED = "generated"
    APPROVED = "approved"
    PUBLISHED = "published"
    FAILED = "failed"


class ArticleStatus(StrEnum):
    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    PUBLISHED = "published"
    REJECTED = "rejected"


class HeadlineOrigin(StrEnum):
    MANUAL = "manual"
    BULK_IMPORT = "bulk_import"
    FEED = "feed"


class ProcessType(StrEnum):
    RESEARCH = "research"
    GENERATION = "generation"
    PUBLISH = "publish"
    BATCH = "batch"
    IMAGE = "image"
    ERROR = "error"


class LogStatus(StrEnum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CitedSource:
    """A source reference as embedded in a research record."""

    url: str
    title: str = ""
    snippet: str = ""
    domain: str = ""
    credibility_score: int = 5

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "CitedSource":
        return cls(
            url=str(payload.get("url") or ""),
            title=str(payload.get("title") or ""),
            snippet=str(payload.get("snippet") or ""),
            domain=str(payload.get("domain") or ""),
            credibility_score=int(payload.get("credibility_score") or 5),
        )


@dataclass(frozen=True)
class Headline:
    id: int
    text: str
    origin: str
    priority: int
    category: str | None
    status: HeadlineStatus
    created_at: datetime
    processed_at: datetime | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Research:
    id: int
    headline_id: int
    query: str
    response: str
    sources: list[CitedSource] = field(default_factory=list)
    quality_score: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class Article:
    id: int
    headline_id: int
    research_id: int
    content: str
    llm_used: str
    quality_score: int | None
    status: ArticleStatus
    external_id: int | None = None
    reviewer_id: int | None = None
    reviewer_notes: str | None = None
    created_at: datetime | None = None
    reviewed_at: datetime | None = None
    published_at: datetime | None = None


@dataclass(frozen=True)
class SourceRecord:
    """Globally deduplicated cited URL."""

    url: str
    domain: str
    title: str | None
    credibility_score: int
    times_cited: int
    last_verified: datetime | None = None


@dataclass(frozen=True)
class LogEntry:
    process_type: ProcessType
    status: LogStatus
    message: str | None = None
    headline_id: int | None = None
    execution_time: float | None = None
    tokens_used: int | None = None
