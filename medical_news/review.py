"""Editorial review decisions: approve, reject, publish or send back for changes."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
import json
import logging
from typing import Protocol

from .delivery.images import ImageService
from .errors import ConfigurationError, FailureKind, InvalidTransition, PipelineError, StageFailure
from .models import Article, ArticleStatus, Headline, HeadlineStatus, LogEntry, LogStatus, ProcessType, Research
from .processing.postprocess import ProcessedContent, process_content
from .state import check_article_transition, check_headline_transition
from .storage import write_log

LOGGER = logging.getLogger("mednews.review")

DOCUMENT_DRAFT = "draft"
DOCUMENT_PUBLISH = "publish"


class ReviewDecision(StrEnum):
    APPROVE = "approve"
    REJECT = "reject"
    PUBLISH = "publish"
    REQUEST_CHANGES = "request_changes"


_ARTICLE_TARGETS: dict[ReviewDecision, ArticleStatus] = {
    ReviewDecision.APPROVE: ArticleStatus.APPROVED,
    ReviewDecision.REJECT: ArticleStatus.REJECTED,
    ReviewDecision.PUBLISH: ArticleStatus.PUBLISHED,
    ReviewDecision.REQUEST_CHANGES: ArticleStatus.UNDER_REVIEW,
}

_HEADLINE_TARGETS: dict[ReviewDecision, HeadlineStatus] = {
    ReviewDecision.APPROVE: HeadlineStatus.APPROVED,
    ReviewDecision.REJECT: HeadlineStatus.FAILED,
    ReviewDecision.PUBLISH: HeadlineStatus.PUBLISHED,
}


class Publisher(Protocol):
    def create_document(
        self,
        *,
        title: str,
        body: str,
        status: str,
        author: int | None = None,
        category_ids: Sequence[int] = (),
        metadata: Mapping[str, object] | None = None,
    ) -> int: ...

    def update_document_status(self, document_id: int, status: str) -> None: ...

    def get_permalink(self, document_id: int) -> str: ...

    def ensure_category(self, name: str) -> int | None: ...


@dataclass(frozen=True)
class ReviewOutcome:
    article_id: int
    decision: ReviewDecision
    article_status: ArticleStatus
    headline_status: HeadlineStatus | None
    message: str
    document_id: int | None = None
    permalink: str | None = None
    images_attached: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "success": True,
            "article_id": self.article_id,
            "decision": self.decision.value,
            "article_status": self.article_status.value,
            "headline_status": self.headline_status.value if self.headline_status else None,
            "message": self.message,
            "document_id": self.document_id,
            "permalink": self.permalink,
            "images_attached": self.images_attached,
        }


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ReviewWorkflow:
    """Applies one editorial decision to a generated article.

    Existence and status transitions are validated before anything is written,
    so a rejected call leaves the article, the headline and the publish target
    untouched.
    """

    def __init__(
        self,
        store: object,
        publisher: Publisher | None = None,
        images: ImageService | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.publisher = publisher
        self.images = images
        self.clock = clock

    def apply_decision(
        self,
        article_id: int,
        decision: ReviewDecision | str,
        notes: str = "",
        reviewer_id: int | None = None,
    ) -> ReviewOutcome | StageFailure:
        try:
            decision = ReviewDecision(decision)
        except ValueError:
            return StageFailure(FailureKind.VALIDATION, f"Unknown review decision: {decision}")

        article = self.store.get_article(article_id)
        if article is None:
            return StageFailure(FailureKind.NOT_FOUND, f"Article {article_id} not found")
        headline = self.store.get_headline(article.headline_id)
        if headline is None:
            return StageFailure(FailureKind.NOT_FOUND, f"Headline {article.headline_id} not found")

        try:
            check_article_transition(article.status, _ARTICLE_TARGETS[decision])
        except InvalidTransition as error:
            return StageFailure(FailureKind.INVALID_STATE, str(error))

        headline_target = _HEADLINE_TARGETS.get(decision)
        if headline_target is not None and headline.status != headline_target:
            try:
                check_headline_transition(headline.status, headline_target)
            except InvalidTransition as error:
                return StageFailure(FailureKind.INVALID_STATE, str(error))

        try:
            if decision is ReviewDecision.APPROVE:
                return self._approve(article, headline, notes, reviewer_id)
            if decision is ReviewDecision.PUBLISH:
                return self._publish(article, headline, notes, reviewer_id)
            if decision is ReviewDecision.REJECT:
                return self._reject(article, headline, notes, reviewer_id)
            return self._request_changes(article, notes, reviewer_id)
        except PipelineError as error:
            LOGGER.warning("Review decision %s on article %s failed: %s", decision, article_id, error)
            return StageFailure.from_error(error)
        except InvalidTransition as error:
            LOGGER.warning("Review decision %s on article %s lost a status race: %s", decision, article_id, error)
            return StageFailure(FailureKind.INVALID_STATE, str(error))
        except Exception as error:  # noqa: BLE001
            LOGGER.exception("Review decision %s on article %s failed", decision, article_id)
            return StageFailure(FailureKind.PERSISTENCE, f"Review decision failed: {error}")

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def _approve(self, article: Article, headline: Headline, notes: str, reviewer_id: int | None) -> ReviewOutcome | StageFailure:
        research = self.store.get_research(article.research_id)
        if research is None:
            return StageFailure(FailureKind.NOT_FOUND, "Missing headline or research data")
        publisher = self._require_publisher()

        processed = process_content(article.content, research.sources)
        document_id = self._create_document(publisher, article, headline, research, processed, notes, reviewer_id, DOCUMENT_DRAFT)
        attached = self._attach_images(publisher, article, headline, document_id)

        self.store.update_article_review(
            article.id,
            status=ArticleStatus.APPROVED,
            reviewer_id=reviewer_id,
            reviewer_notes=notes,
            external_id=document_id,
        )
        self._advance_headline(headline, HeadlineStatus.APPROVED)
        write_log(
            self.store,
            LogEntry(
                process_type=ProcessType.PUBLISH,
                status=LogStatus.COMPLETED,
                message=f"Article approved as draft document {document_id}",
                headline_id=headline.id,
            ),
        )
        return ReviewOutcome(
            article_id=article.id,
            decision=ReviewDecision.APPROVE,
            article_status=ArticleStatus.APPROVED,
            headline_status=HeadlineStatus.APPROVED,
            message="Article approved and saved as a draft",
            document_id=document_id,
            images_attached=attached,
        )

    def _publish(self, article: Article, headline: Headline, notes: str, reviewer_id: int | None) -> ReviewOutcome | StageFailure:
        research = self.store.get_research(article.research_id)
        if research is None:
            return StageFailure(FailureKind.NOT_FOUND, "Missing headline or research data")
        publisher = self._require_publisher()

        attached = 0
        if article.external_id is not None:
            document_id = article.external_id
            publisher.update_document_status(document_id, DOCUMENT_PUBLISH)
        else:
            processed = process_content(article.content, research.sources)
            document_id = self._create_document(
                publisher, article, headline, research, processed, notes, reviewer_id, DOCUMENT_PUBLISH
            )
            attached = self._attach_images(publisher, article, headline, document_id)

        self.store.update_article_review(
            article.id,
            status=ArticleStatus.PUBLISHED,
            reviewer_id=reviewer_id,
            reviewer_notes=notes,
            external_id=document_id,
            published=True,
        )
        self._advance_headline(headline, HeadlineStatus.PUBLISHED)
        write_log(
            self.store,
            LogEntry(
                process_type=ProcessType.PUBLISH,
                status=LogStatus.COMPLETED,
                message=f"Article published as document {document_id}",
                headline_id=headline.id,
            ),
        )

        permalink: str | None
        try:
            permalink = publisher.get_permalink(document_id) or None
        except PipelineError as error:
            LOGGER.warning("Could not fetch permalink for document %s: %s", document_id, error)
            permalink = None

        return ReviewOutcome(
            article_id=article.id,
            decision=ReviewDecision.PUBLISH,
            article_status=ArticleStatus.PUBLISHED,
            headline_status=HeadlineStatus.PUBLISHED,
            message="Article published successfully",
            document_id=document_id,
            permalink=permalink,
            images_attached=attached,
        )

    def _reject(self, article: Article, headline: Headline, notes: str, reviewer_id: int | None) -> ReviewOutcome:
        self.store.update_article_review(
            article.id,
            status=ArticleStatus.REJECTED,
            reviewer_id=reviewer_id,
            reviewer_notes=notes,
        )
        self._advance_headline(headline, HeadlineStatus.FAILED, notes=f"Article rejected: {notes}")
        return ReviewOutcome(
            article_id=article.id,
            decision=ReviewDecision.REJECT,
            article_status=ArticleStatus.REJECTED,
            headline_status=HeadlineStatus.FAILED,
            message="Article rejected",
        )

    def _request_changes(self, article: Article, notes: str, reviewer_id: int | None) -> ReviewOutcome:
        self.store.update_article_review(
            article.id,
            status=ArticleStatus.UNDER_REVIEW,
            reviewer_id=reviewer_id,
            reviewer_notes=notes,
        )
        return ReviewOutcome(
            article_id=article.id,
            decision=ReviewDecision.REQUEST_CHANGES,
            article_status=ArticleStatus.UNDER_REVIEW,
            headline_status=None,
            message="Changes requested for article",
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_publisher(self) -> Publisher:
        if self.publisher is None:
            raise ConfigurationError("No publish target configured")
        return self.publisher

    def _advance_headline(self, headline: Headline, target: HeadlineStatus, notes: str | None = None) -> None:
        if headline.status == target:
            return
        current = self.store.get_headline(headline.id)
        check_headline_transition(current.status if current is not None else headline.status, target)
        self.store.update_headline_status(headline.id, target, notes=notes)

    def _create_document(
        self,
        publisher: Publisher,
        article: Article,
        headline: Headline,
        research: Research,
        processed: ProcessedContent,
        notes: str,
        reviewer_id: int | None,
        status: str,
    ) -> int:
        category_ids: list[int] = []
        if headline.category:
            category_id = publisher.ensure_category(headline.category)
            if category_id is not None:
                category_ids.append(category_id)

        metadata = {
            "mna_original_headline": headline.text,
            "mna_research_sources": json.dumps([source.to_dict() for source in research.sources]),
            "mna_generated_by": article.llm_used,
            "mna_quality_score": article.quality_score if article.quality_score is not None else "",
            "mna_reviewer_notes": notes,
            "mna_processed_date": self.clock().isoformat(),
        }
        return publisher.create_document(
            title=processed.title or headline.text,
            body=processed.html,
            status=status,
            author=reviewer_id,
            category_ids=category_ids,
            metadata=metadata,
        )

    def _attach_images(self, publisher: Publisher, article: Article, headline: Headline, document_id: int) -> int:
        if self.images is None:
            return 0

        try:
            found = self.images.get_article_images(headline.text, headline.category, article.content)
        except Exception as error:  # noqa: BLE001
            LOGGER.warning("Image lookup failed for article %s: %s", article.id, error)
            return 0

        attached = 0
        if found.featured is not None:
            if self.images.attach(found.featured, document_id, is_featured=True, publisher=publisher) is not None:
                attached += 1
        for image in found.content:
            if self.images.attach(image, document_id, is_featured=False, publisher=publisher) is not None:
                attached += 1

        write_log(
            self.store,
            LogEntry(
                process_type=ProcessType.IMAGE,
                status=LogStatus.COMPLETED,
                message=f"Attached {attached} images to document {document_id}",
                headline_id=headline.id,
            ),
        )
        return attached

    # ------------------------------------------------------------------
    # Queue maintenance
    # ------------------------------------------------------------------

    def pending_review(self, limit: int = 10) -> list:
        return self.store.list_articles_for_review(limit)

    def workflow_stats(self, days: int = 7) -> dict[str, object]:
        return self.store.workflow_stats(since=self.clock() - timedelta(days=days))

    def cleanup_old_articles(self, days: int = 60) -> int:
        deleted = self.store.delete_rejected_articles(before=self.clock() - timedelta(days=days))
        if deleted:
            LOGGER.info("Deleted %d rejected articles older than %d days", deleted, days)
        return deleted
