"""Postgres persistence for headlines, research, articles, sources and logs."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
import json
import logging
from pathlib import Path
from typing import Any

from .models import (
    Article,
    ArticleStatus,
    CitedSource,
    Headline,
    HeadlineStatus,
    LogEntry,
    Research,
    SourceRecord,
)

LOGGER = logging.getLogger("mednews.storage")

SCHEMA_FILE = Path(__file__).resolve().parent / "sql" / "001_schema.sql"

_HEADLINE_COLUMNS = "id, headline, origin, priority, category, status, created_at, processed_at, notes"
_ARTICLE_COLUMNS = (
    "id, headline_id, research_id, content, llm_used, quality_score, status, external_id, "
    "reviewer_id, reviewer_notes, created_at, reviewed_at, published_at"
)


@dataclass(frozen=True)
class ReviewQueueItem:
    """An article awaiting editorial review with its headline context."""

    article: Article
    headline: str
    category: str | None
    sources: list[CitedSource]


def _headline_from_row(row: Sequence[Any]) -> Headline:
    return Headline(
        id=row[0],
        text=row[1],
        origin=row[2],
        priority=row[3],
        category=row[4],
        status=HeadlineStatus(row[5]),
        created_at=row[6],
        processed_at=row[7],
        notes=row[8],
    )


def _article_from_row(row: Sequence[Any]) -> Article:
    return Article(
        id=row[0],
        headline_id=row[1],
        research_id=row[2],
        content=row[3],
        llm_used=row[4],
        quality_score=row[5],
        status=ArticleStatus(row[6]),
        external_id=row[7],
        reviewer_id=row[8],
        reviewer_notes=row[9],
        created_at=row[10],
        reviewed_at=row[11],
        published_at=row[12],
    )


def _sources_from_json(value: Any) -> list[CitedSource]:
    if isinstance(value, str):
        value = json.loads(value or "[]")
    if not isinstance(value, list):
        return []
    return [CitedSource.from_dict(item) for item in value if isinstance(item, dict)]


class PostgresStore:
    """Storage backed by a single psycopg connection."""

    def __init__(self, connection: object) -> None:
        self._connection = connection

    @classmethod
    def connect(cls, dsn: str) -> "PostgresStore":
        import psycopg

        return cls(psycopg.connect(dsn))

    def close(self) -> None:
        self._connection.close()

    def apply_schema(self, path: Path = SCHEMA_FILE) -> None:
        with self._connection.cursor() as cursor:
            cursor.execute(path.read_text(encoding="utf-8"))
        self._connection.commit()

    # Headlines

    def insert_headline(
        self,
        text: str,
        *,
        origin: str = "manual",
        priority: int = 5,
        category: str | None = None,
        notes: str | None = None,
    ) -> int:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO headlines (headline, origin, priority, category, status, notes)
                VALUES (%s, %s, %s, %s, 'pending', %s)
                RETURNING id
                """,
                (text, origin, priority, category, notes),
            )
            headline_id = cursor.fetchone()[0]
        self._connection.commit()
        return headline_id

    def get_headline(self, headline_id: int) -> Headline | None:
        with self._connection.cursor() as cursor:
            cursor.execute(f"SELECT {_HEADLINE_COLUMNS} FROM headlines WHERE id = %s", (headline_id,))
            row = cursor.fetchone()
        return _headline_from_row(row) if row is not None else None

    def headline_text_exists(self, text: str) -> bool:
        with self._connection.cursor() as cursor:
            cursor.execute("SELECT EXISTS (SELECT 1 FROM headlines WHERE headline = %s)", (text,))
            row = cursor.fetchone()
        return bool(row and row[0])

    def list_headlines_by_status(self, status: HeadlineStatus, limit: int) -> list[Headline]:
        with self._connection.cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_HEADLINE_COLUMNS}
                FROM headlines
                WHERE status = %s
                ORDER BY priority DESC, created_at ASC, id ASC
                LIMIT %s
                """,
                (str(status), limit),
            )
            rows = cursor.fetchall()
        return [_headline_from_row(row) for row in rows]

    def claim_headline(self, headline_id: int) -> bool:
        """Flip a pending headline to processing; False if it was not pending."""

        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                UPDATE headlines
                SET status = 'processing',
                    processed_at = NOW()
                WHERE id = %s
                  AND status = 'pending'
                """,
                (headline_id,),
            )
            claimed = cursor.rowcount == 1
        self._connection.commit()
        return claimed

    def update_headline_status(self, headline_id: int, status: HeadlineStatus, notes: str | None = None) -> None:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                UPDATE headlines
                SET status = %s,
                    processed_at = NOW(),
                    notes = COALESCE(%s, notes)
                WHERE id = %s
                """,
                (str(status), notes, headline_id),
            )
        self._connection.commit()

    def list_failed_headlines(self, *, before: datetime, limit: int) -> list[Headline]:
        with self._connection.cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_HEADLINE_COLUMNS}
                FROM headlines
                WHERE status = 'failed'
                  AND processed_at < %s
                ORDER BY priority DESC, processed_at ASC
                LIMIT %s
                """,
                (before, limit),
            )
            rows = cursor.fetchall()
        return [_headline_from_row(row) for row in rows]

    def reset_failed_headline(self, headline_id: int) -> bool:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                UPDATE headlines
                SET status = 'pending',
                    notes = CONCAT(COALESCE(notes, ''), ' [Retrying]')
                WHERE id = %s
                  AND status = 'failed'
                """,
                (headline_id,),
            )
            reset = cursor.rowcount == 1
        self._connection.commit()
        return reset

    def delete_headlines(self, *, statuses: Iterable[HeadlineStatus], before: datetime) -> int:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                DELETE FROM headlines
                WHERE status = ANY(%s)
                  AND processed_at < %s
                """,
                ([str(status) for status in statuses], before),
            )
            deleted = cursor.rowcount
        self._connection.commit()
        return deleted

    # Research

    def insert_research(
        self,
        *,
        headline_id: int,
        query: str,
        response: str,
        sources: Sequence[CitedSource],
        quality_score: int | None = None,
    ) -> int:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO research (headline_id, query, response, sources, quality_score)
                VALUES (%s, %s, %s, %s::jsonb, %s)
                RETURNING id
                """,
                (
                    headline_id,
                    query,
                    response,
                    json.dumps([source.to_dict() for source in sources]),
                    quality_score,
                ),
            )
            research_id = cursor.fetchone()[0]
        self._connection.commit()
        return research_id

    def get_research(self, research_id: int) -> Research | None:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                SELECT id, headline_id, query, response, sources, quality_score, created_at
                FROM research
                WHERE id = %s
                """,
                (research_id,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return Research(
            id=row[0],
            headline_id=row[1],
            query=row[2],
            response=row[3],
            sources=_sources_from_json(row[4]),
            quality_score=row[5],
            created_at=row[6],
        )

    # Articles

    def insert_article(
        self,
        *,
        headline_id: int,
        research_id: int,
        content: str,
        llm_used: str,
        quality_score: int | None = None,
    ) -> int:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO articles (headline_id, research_id, content, llm_used, quality_score, status)
                VALUES (%s, %s, %s, %s, %s, 'draft')
                RETURNING id
                """,
                (headline_id, research_id, content, llm_used, quality_score),
            )
            article_id = cursor.fetchone()[0]
        self._connection.commit()
        return article_id

    def get_article(self, article_id: int) -> Article | None:
        with self._connection.cursor() as cursor:
            cursor.execute(f"SELECT {_ARTICLE_COLUMNS} FROM articles WHERE id = %s", (article_id,))
            row = cursor.fetchone()
        return _article_from_row(row) if row is not None else None

    def update_article_review(
        self,
        article_id: int,
        *,
        status: ArticleStatus,
        reviewer_id: int | None,
        reviewer_notes: str | None,
        external_id: int | None = None,
        published: bool = False,
    ) -> None:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                UPDATE articles
                SET status = %s,
                    reviewer_id = %s,
                    reviewer_notes = %s,
                    external_id = COALESCE(%s, external_id),
                    reviewed_at = NOW(),
                    published_at = CASE WHEN %s THEN NOW() ELSE published_at END
                WHERE id = %s
                """,
                (str(status), reviewer_id, reviewer_notes, external_id, published, article_id),
            )
        self._connection.commit()

    def list_articles_for_review(self, limit: int = 10) -> list[ReviewQueueItem]:
        with self._connection.cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {', '.join('a.' + column.strip() for column in _ARTICLE_COLUMNS.split(','))},
                       h.headline,
                       h.category,
                       r.sources
                FROM articles AS a
                LEFT JOIN headlines AS h ON h.id = a.headline_id
                LEFT JOIN research AS r ON r.id = a.research_id
                WHERE a.status IN ('draft', 'under_review')
                ORDER BY a.created_at DESC
                LIMIT %s
                """,
                (limit,),
            )
            rows = cursor.fetchall()
        return [
            ReviewQueueItem(
                article=_article_from_row(row[:13]),
                headline=row[13] or "",
                category=row[14],
                sources=_sources_from_json(row[15]),
            )
            for row in rows
        ]

    def delete_rejected_articles(self, *, before: datetime) -> int:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                DELETE FROM articles
                WHERE status = 'rejected'
                  AND reviewed_at < %s
                """,
                (before,),
            )
            deleted = cursor.rowcount
        self._connection.commit()
        return deleted

    # Sources

    def record_source_sighting(self, source: CitedSource) -> None:
        """Insert a first sighting or bump times_cited; the first score is kept."""

        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO sources (url, domain, title, credibility_score, times_cited, last_verified)
                VALUES (%s, %s, %s, %s, 1, NOW())
                ON CONFLICT (url) DO UPDATE SET
                    times_cited = sources.times_cited + 1,
                    last_verified = NOW()
                """,
                (source.url, source.domain, source.title or None, source.credibility_score),
            )
        self._connection.commit()

    def get_source(self, url: str) -> SourceRecord | None:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                SELECT url, domain, title, credibility_score, times_cited, last_verified
                FROM sources
                WHERE url = %s
                """,
                (url,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return SourceRecord(
            url=row[0],
            domain=row[1],
            title=row[2],
            credibility_score=row[3],
            times_cited=row[4],
            last_verified=row[5],
        )

    # Logs

    def insert_log(self, entry: LogEntry) -> None:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO logs (headline_id, process_type, status, message, execution_time, tokens_used)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    entry.headline_id,
                    str(entry.process_type),
                    str(entry.status),
                    entry.message,
                    round(entry.execution_time, 3) if entry.execution_time is not None else None,
                    entry.tokens_used,
                ),
            )
        self._connection.commit()

    # Statistics

    def processing_stats(self, *, since: datetime) -> dict[str, object]:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                SELECT
                    (SELECT COUNT(*) FROM headlines WHERE processed_at >= %s),
                    (SELECT COUNT(*) FROM headlines WHERE created_at >= %s),
                    (SELECT COUNT(*) FROM articles WHERE created_at >= %s),
                    (SELECT COUNT(*) FROM articles WHERE published_at >= %s),
                    (SELECT AVG(execution_time) FROM logs WHERE created_at >= %s AND execution_time IS NOT NULL),
                    (SELECT SUM(tokens_used) FROM logs WHERE created_at >= %s AND tokens_used IS NOT NULL)
                """,
                (since, since, since, since, since, since),
            )
            processed, created, generated, published, avg_time, total_tokens = cursor.fetchone()

        return {
            "headlines_processed": int(processed or 0),
            "articles_generated": int(generated or 0),
            "articles_published": int(published or 0),
            "success_rate": round((generated / created) * 100, 1) if created else 0.0,
            "avg_processing_time": round(float(avg_time), 2) if avg_time is not None else 0.0,
            "total_tokens_used": int(total_tokens or 0),
        }

    def workflow_stats(self, *, since: datetime) -> dict[str, object]:
        with self._connection.cursor() as cursor:
            cursor.execute(
                """
                SELECT
                    COUNT(*) FILTER (WHERE status IN ('draft', 'under_review')),
                    COUNT(*) FILTER (WHERE status = 'approved' AND reviewed_at >= %s),
                    COUNT(*) FILTER (WHERE status = 'published' AND published_at >= %s),
                    COUNT(*) FILTER (WHERE status = 'rejected' AND reviewed_at >= %s),
                    AVG(EXTRACT(EPOCH FROM (reviewed_at - created_at)) / 60.0)
                        FILTER (WHERE reviewed_at IS NOT NULL AND reviewed_at >= %s)
                FROM articles
                """,
                (since, since, since, since),
            )
            pending, approved, published, rejected, avg_review = cursor.fetchone()

        return {
            "articles_pending_review": int(pending or 0),
            "articles_approved": int(approved or 0),
            "articles_published": int(published or 0),
            "articles_rejected": int(rejected or 0),
            "avg_review_time": round(float(avg_review), 1) if avg_review is not None else 0.0,
        }


def write_log(store: object, entry: LogEntry) -> None:
    """Append an activity Log row; a failed write only warns."""

    try:
        store.insert_log(entry)
    except Exception as error:  # noqa: BLE001
        LOGGER.warning("Could not write %s log entry: %s", entry.process_type, error)
