import json
from datetime import UTC, datetime

from medical_news.models import ArticleStatus, CitedSource, HeadlineStatus, LogEntry, LogStatus, ProcessType
from medical_news.storage import SCHEMA_FILE, PostgresStore, write_log


class _Cursor:
    def __init__(self, scripted_fetches=(), *, rowcount=1, fetchall_rows=()):
        self._scripted_fetches = list(scripted_fetches)
        self.fetchall_rows = list(fetchall_rows)
        self.executed: list[tuple[str, tuple[object, ...] | None]] = []
        self.rowcount = rowcount

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, query, params=None):
        self.executed.append((" ".join(query.split()), params))

    def fetchone(self):
        if not self._scripted_fetches:
            return None
        return self._scripted_fetches.pop(0)

    def fetchall(self):
        return self.fetchall_rows


class _Connection:
    def __init__(self, scripted_fetches=(), **cursor_kwargs):
        self.cursor_obj = _Cursor(scripted_fetches, **cursor_kwargs)
        self.commits = 0

    def cursor(self):
        return self.cursor_obj

    def commit(self):
        self.commits += 1


def test_claim_is_conditional_on_pending_status() -> None:
    connection = _Connection(rowcount=0)

    claimed = PostgresStore(connection).claim_headline(7)

    query, params = connection.cursor_obj.executed[0]
    assert claimed is False
    assert "SET status = 'processing'" in query
    assert "WHERE id = %s AND status = 'pending'" in query
    assert params == (7,)
    assert connection.commits == 1


def test_reset_failed_appends_retrying_marker() -> None:
    connection = _Connection(rowcount=1)

    assert PostgresStore(connection).reset_failed_headline(3) is True

    query, _ = connection.cursor_obj.executed[0]
    assert "CONCAT(COALESCE(notes, ''), ' [Retrying]')" in query
    assert "AND status = 'failed'" in query


def test_pending_listing_orders_by_priority_then_age() -> None:
    created = datetime(2025, 3, 1, tzinfo=UTC)
    connection = _Connection(
        fetchall_rows=[(1, "Measles outbreak", "manual", 4, None, "pending", created, None, None)]
    )

    headlines = PostgresStore(connection).list_headlines_by_status(HeadlineStatus.PENDING, 5)

    query, params = connection.cursor_obj.executed[0]
    assert "ORDER BY priority DESC, created_at ASC, id ASC" in query
    assert params == ("pending", 5)
    assert headlines[0].status == HeadlineStatus.PENDING
    assert headlines[0].priority == 4


def test_research_sources_are_written_as_jsonb() -> None:
    connection = _Connection([(12,)])
    source = CitedSource(url="https://www.cdc.gov/flu", title="Flu", domain="cdc.gov", credibility_score=9)

    research_id = PostgresStore(connection).insert_research(
        headline_id=1, query="q", response="r", sources=[source], quality_score=8
    )

    query, params = connection.cursor_obj.executed[0]
    assert research_id == 12
    assert "VALUES (%s, %s, %s, %s::jsonb, %s)" in query
    assert json.loads(params[3]) == [source.to_dict()]


def test_research_sources_are_read_from_json_text_or_list() -> None:
    payload = [{"url": "https://www.cdc.gov/flu", "domain": "cdc.gov", "credibility_score": 9}]
    for stored in (payload, json.dumps(payload)):
        connection = _Connection([(2, 1, "q", "r", stored, 8, None)])

        research = PostgresStore(connection).get_research(2)

        assert research.sources == [CitedSource(url="https://www.cdc.gov/flu", domain="cdc.gov", credibility_score=9)]


def test_source_sighting_upserts_without_touching_score() -> None:
    connection = _Connection()

    PostgresStore(connection).record_source_sighting(
        CitedSource(url="https://www.nih.gov/x", domain="nih.gov", credibility_score=9)
    )

    query, params = connection.cursor_obj.executed[0]
    assert "ON CONFLICT (url) DO UPDATE SET times_cited = sources.times_cited + 1" in query
    assert "credibility_score = EXCLUDED" not in query
    assert params == ("https://www.nih.gov/x", "nih.gov", None, 9)


def test_article_review_keeps_external_id_and_stamps_publish() -> None:
    connection = _Connection()

    PostgresStore(connection).update_article_review(
        5, status=ArticleStatus.PUBLISHED, reviewer_id=2, reviewer_notes="ok", published=True
    )

    query, params = connection.cursor_obj.executed[0]
    assert "external_id = COALESCE(%s, external_id)" in query
    assert "published_at = CASE WHEN %s THEN NOW() ELSE published_at END" in query
    assert params == ("published", 2, "ok", None, True, 5)


def test_headline_cleanup_uses_status_list() -> None:
    connection = _Connection(rowcount=4)
    before = datetime(2025, 1, 1, tzinfo=UTC)

    deleted = PostgresStore(connection).delete_headlines(
        statuses=(HeadlineStatus.PUBLISHED, HeadlineStatus.GENERATED), before=before
    )

    _, params = connection.cursor_obj.executed[0]
    assert deleted == 4
    assert params == (["published", "generated"], before)


def test_schema_declares_cascading_foreign_keys() -> None:
    schema = SCHEMA_FILE.read_text(encoding="utf-8")

    assert schema.count("ON DELETE CASCADE") >= 2
    assert "CREATE TABLE IF NOT EXISTS sources" in schema


def test_write_log_swallows_store_errors() -> None:
    class _BrokenStore:
        def insert_log(self, entry):
            raise RuntimeError("disk full")

    write_log(_BrokenStore(), LogEntry(process_type=ProcessType.BATCH, status=LogStatus.COMPLETED))

    connection = _Connection()
    write_log(
        PostgresStore(connection),
        LogEntry(process_type=ProcessType.RESEARCH, status=LogStatus.FAILED, execution_time=1.23456, headline_id=9),
    )
    _, params = connection.cursor_obj.executed[0]
    assert params == (9, "research", "failed", None, 1.235, None)
