import sys
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from medical_news.errors import EmptyResultError  # noqa: E402
from medical_news.generation.llm_clients import LLMResponse  # noqa: E402
from medical_news.generation.perplexity import ResearchResponse  # noqa: E402
from medical_news.models import (  # noqa: E402
    Article,
    ArticleStatus,
    Headline,
    HeadlineStatus,
    Research,
    SourceRecord,
)
from medical_news.storage import ReviewQueueItem  # noqa: E402

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

WHO_URL = "https://www.who.int/news-room/fact-sheets/detail/vitamin-d"
HEALTHLINE_URL = "https://www.healthline.com/nutrition/vitamin-d-deficiency-symptoms"
BLOG_URL = "https://wellness-notes.example.net/vitamin-d-and-colds"


class InMemoryStore:
    """Dict-backed stand-in for PostgresStore used by orchestrator and workflow tests."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now
        self.headlines: dict[int, Headline] = {}
        self.research: dict[int, Research] = {}
        self.articles: dict[int, Article] = {}
        self.sources: dict[str, SourceRecord] = {}
        self.logs = []
        self.writes: list[str] = []
        self._next_id = 0

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    # Headlines

    def insert_headline(self, text, *, origin="manual", priority=5, category=None, notes=None):
        headline_id = self._new_id()
        self.headlines[headline_id] = Headline(
            id=headline_id,
            text=text,
            origin=origin,
            priority=priority,
            category=category,
            status=HeadlineStatus.PENDING,
            created_at=self.now + timedelta(seconds=headline_id),
            notes=notes,
        )
        self.writes.append("insert_headline")
        return headline_id

    def get_headline(self, headline_id):
        return self.headlines.get(headline_id)

    def headline_text_exists(self, text):
        return any(headline.text == text for headline in self.headlines.values())

    def list_headlines_by_status(self, status, limit):
        matching = [headline for headline in self.headlines.values() if headline.status == status]
        matching.sort(key=lambda headline: (-headline.priority, headline.created_at, headline.id))
        return matching[:limit]

    def claim_headline(self, headline_id):
        headline = self.headlines.get(headline_id)
        if headline is None or headline.status != HeadlineStatus.PENDING:
            return False
        self.headlines[headline_id] = replace(headline, status=HeadlineStatus.PROCESSING, processed_at=self.now)
        self.writes.append("claim_headline")
        return True

    def update_headline_status(self, headline_id, status, notes=None):
        headline = self.headlines[headline_id]
        self.headlines[headline_id] = replace(
            headline,
            status=HeadlineStatus(status),
            processed_at=self.now,
            notes=notes if notes is not None else headline.notes,
        )
        self.writes.append("update_headline_status")

    def list_failed_headlines(self, *, before, limit):
        matching = [
            headline
            for headline in self.headlines.values()
            if headline.status == HeadlineStatus.FAILED and headline.processed_at is not None and headline.processed_at < before
        ]
        matching.sort(key=lambda headline: (-headline.priority, headline.processed_at))
        return matching[:limit]

    def reset_failed_headline(self, headline_id):
        headline = self.headlines.get(headline_id)
        if headline is None or headline.status != HeadlineStatus.FAILED:
            return False
        self.headlines[headline_id] = replace(
            headline,
            status=HeadlineStatus.PENDING,
            notes=f"{headline.notes or ''} [Retrying]",
        )
        self.writes.append("reset_failed_headline")
        return True

    def delete_headlines(self, *, statuses, before):
        wanted = {HeadlineStatus(status) for status in statuses}
        doomed = [
            headline.id
            for headline in self.headlines.values()
            if headline.status in wanted and headline.processed_at is not None and headline.processed_at < before
        ]
        for headline_id in doomed:
            del self.headlines[headline_id]
            self.research = {key: row for key, row in self.research.items() if row.headline_id != headline_id}
            self.articles = {key: row for key, row in self.articles.items() if row.headline_id != headline_id}
        return len(doomed)

    # Research

    def insert_research(self, *, headline_id, query, response, sources, quality_score=None):
        research_id = self._new_id()
        self.research[research_id] = Research(
            id=research_id,
            headline_id=headline_id,
            query=query,
            response=response,
            sources=list(sources),
            quality_score=quality_score,
            created_at=self.now,
        )
        self.writes.append("insert_research")
        return research_id

    def get_research(self, research_id):
        return self.research.get(research_id)

    # Articles

    def insert_article(self, *, headline_id, research_id, content, llm_used, quality_score=None):
        article_id = self._new_id()
        self.articles[article_id] = Article(
            id=article_id,
            headline_id=headline_id,
            research_id=research_id,
            content=content,
            llm_used=llm_used,
            quality_score=quality_score,
            status=ArticleStatus.DRAFT,
            created_at=self.now,
        )
        self.writes.append("insert_article")
        return article_id

    def get_article(self, article_id):
        return self.articles.get(article_id)

    def update_article_review(self, article_id, *, status, reviewer_id, reviewer_notes, external_id=None, published=False):
        article = self.articles[article_id]
        self.articles[article_id] = replace(
            article,
            status=ArticleStatus(status),
            reviewer_id=reviewer_id,
            reviewer_notes=reviewer_notes,
            external_id=external_id if external_id is not None else article.external_id,
            reviewed_at=self.now,
            published_at=self.now if published else article.published_at,
        )
        self.writes.append("update_article_review")

    def list_articles_for_review(self, limit=10):
        waiting = [
            article
            for article in self.articles.values()
            if article.status in {ArticleStatus.DRAFT, ArticleStatus.UNDER_REVIEW}
        ]
        waiting.sort(key=lambda article: (article.created_at, article.id), reverse=True)
        items = []
        for article in waiting[:limit]:
            headline = self.headlines.get(article.headline_id)
            research = self.research.get(article.research_id)
            items.append(
                ReviewQueueItem(
                    article=article,
                    headline=headline.text if headline else "",
                    category=headline.category if headline else None,
                    sources=research.sources if research else [],
                )
            )
        return items

    def delete_rejected_articles(self, *, before):
        doomed = [
            article.id
            for article in self.articles.values()
            if article.status == ArticleStatus.REJECTED and article.reviewed_at is not None and article.reviewed_at < before
        ]
        for article_id in doomed:
            del self.articles[article_id]
        return len(doomed)

    # Sources and logs

    def record_source_sighting(self, source):
        existing = self.sources.get(source.url)
        if existing is None:
            self.sources[source.url] = SourceRecord(
                url=source.url,
                domain=source.domain,
                title=source.title or None,
                credibility_score=source.credibility_score,
                times_cited=1,
                last_verified=self.now,
            )
        else:
            self.sources[source.url] = replace(existing, times_cited=existing.times_cited + 1, last_verified=self.now)

    def get_source(self, url):
        return self.sources.get(url)

    def insert_log(self, entry):
        self.logs.append(entry)

    def processing_stats(self, *, since):
        return {"since": since, "headlines_processed": 0}

    def workflow_stats(self, *, since):
        return {"since": since, "articles_pending_review": len(self.list_articles_for_review(1000))}


class FakeResearchClient:
    def __init__(self, text="", citations=(), *, error=None, tokens_used=420, model="sonar-pro"):
        self.text = text
        self.citations = list(citations)
        self.error = error
        self.tokens_used = tokens_used
        self.model = model
        self.calls = []

    def research(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return ResearchResponse(text=self.text, citations=self.citations, tokens_used=self.tokens_used, model=self.model)


class FakeProvider:
    def __init__(self, text="", *, name="openai", error=None, tokens_used=1500):
        self.name = name
        self.text = text
        self.error = error
        self.tokens_used = tokens_used
        self.calls = []

    def generate(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        if not self.text:
            raise EmptyResultError(f"No content returned from {self.name}")
        return LLMResponse(text=self.text, tokens_used=self.tokens_used, model="test-model")


class FakePublisher:
    def __init__(self):
        self.documents = {}
        self.status_updates = []
        self.categories = {}
        self.media = []
        self.featured = {}

    def create_document(self, *, title, body, status, author=None, category_ids=(), metadata=None):
        document_id = 100 + len(self.documents)
        self.documents[document_id] = {
            "title": title,
            "body": body,
            "status": status,
            "author": author,
            "category_ids": list(category_ids),
            "metadata": dict(metadata or {}),
        }
        return document_id

    def update_document_status(self, document_id, status):
        self.documents[document_id]["status"] = status
        self.status_updates.append((document_id, status))

    def get_permalink(self, document_id):
        return f"https://news.example.org/?p={document_id}"

    def ensure_category(self, name):
        return self.categories.setdefault(name, 10 + len(self.categories))

    def upload_media(self, data, *, filename, content_type="image/jpeg", alt_text="", post_id=None, caption=""):
        self.media.append({"filename": filename, "alt_text": alt_text, "post_id": post_id, "size": len(data)})
        return 500 + len(self.media)

    def set_featured_media(self, document_id, media_id):
        self.featured[document_id] = media_id


def vitamin_d_research_text() -> str:
    paragraph = (
        "Low serum vitamin D concentrations have been associated with a higher incidence of acute "
        "respiratory tract infections in several observational cohorts and randomised trials. "
    )
    return (
        "## Key findings\n\n"
        + paragraph * 6
        + f"\n\nThe WHO fact sheet summarises deficiency thresholds ({WHO_URL}).\n\n"
        "### Sources\n"
        f"1. **Healthline overview:** {HEALTHLINE_URL}\n"
        f"2. Wellness Notes blog ({BLOG_URL})\n"
    )


def vitamin_d_article(urls=(WHO_URL, HEALTHLINE_URL, BLOG_URL)) -> str:
    sentence = "Vitamin D levels were measured in adults during the winter season."
    body = " ".join([sentence] * 15)
    paragraphs = ["# Vitamin D Deficiency Linked to Respiratory Infection Risk"]
    for url in urls:
        paragraphs.append(f"{body} [Source: {url}]")
    paragraphs.append(body)
    paragraphs.append("Readers should consult a healthcare professional before changing any supplement routine.")
    return "\n\n".join(paragraphs)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def research_client() -> FakeResearchClient:
    return FakeResearchClient(
        text=vitamin_d_research_text(),
        citations=[{"url": WHO_URL, "title": "Vitamin D fact sheet", "snippet": "Deficiency is common."}],
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(text=vitamin_d_article())
