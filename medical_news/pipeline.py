"""Headline processing orchestration and command-line entrypoints."""

from __future__ import annotations

import argparse
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
import json
import logging
import os
from pathlib import Path
import sys
import time

from .config import Settings, load_settings
from .delivery.email import EmailNotifier, SMTPConfig, build_review_notification
from .delivery.images import ImageService
from .delivery.wordpress import WordPressConfig, WordPressPublisher
from .errors import FailureKind, StageFailure, ValidationError
from .generation.draft_pass import run_draft_pass
from .generation.llm_clients import GenerationProvider, select_provider
from .generation.perplexity import PerplexityClient
from .generation.research_pass import ResearchClient, run_research_pass
from .intake import add_headline, import_headlines
from .models import Headline, HeadlineStatus, LogEntry, LogStatus, ProcessType
from .review import ReviewDecision, ReviewWorkflow
from .state import can_transition_headline, check_headline_transition
from .storage import PostgresStore, ReviewQueueItem, write_log

LOGGER = logging.getLogger("mednews.pipeline")
if not LOGGER.handlers:
    configured_level = os.getenv("MEDNEWS_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    logging.basicConfig(level=getattr(logging, configured_level, logging.INFO), format="%(message)s")

BATCH_PACING_S = 2.0
RETRY_BACKOFF = timedelta(hours=24)
HEADLINE_RETENTION_DAYS = 30
REJECTED_RETENTION_DAYS = 60
RETENTION_STATUSES: tuple[HeadlineStatus, ...] = (HeadlineStatus.PUBLISHED, HeadlineStatus.GENERATED)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _log_event(*, headline_id: int | None, stage: str, event: str, elapsed_s: float | None = None, **extra: object) -> None:
    payload: dict[str, object] = {
        "headline_id": headline_id,
        "stage": stage,
        "event": event,
    }
    if elapsed_s is not None:
        payload["elapsed_s"] = round(elapsed_s, 3)
    payload.update(extra)
    LOGGER.info(json.dumps(payload, sort_keys=True, default=str))


@dataclass(frozen=True)
class ProcessOutcome:
    headline_id: int
    success: bool
    message: str
    headline: str = ""
    article_id: int | None = None
    quality_score: int | None = None
    failure: StageFailure | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "headline_id": self.headline_id,
            "headline": self.headline,
            "success": self.success,
            "message": self.message,
        }
        if self.article_id is not None:
            payload["article_id"] = self.article_id
            payload["quality_score"] = self.quality_score
        if self.failure is not None:
            payload["failure"] = self.failure.to_dict()
        return payload


@dataclass(frozen=True)
class BatchSummary:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    details: list[ProcessOutcome] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[ProcessOutcome]) -> "BatchSummary":
        successful = sum(1 for outcome in outcomes if outcome.success)
        return cls(
            processed=len(outcomes),
            successful=successful,
            failed=len(outcomes) - successful,
            details=list(outcomes),
        )

    @property
    def message(self) -> str:
        if self.error is not None:
            return f"Batch processing failed: {self.error}"
        if not self.processed:
            return "No pending headlines to process"
        return f"Batch processing completed: {self.successful} successful, {self.failed} failed"

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.error is None,
            "message": self.message,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "details": [outcome.to_dict() for outcome in self.details],
        }


class HeadlineProcessor:
    """Moves pending headlines through research and generation.

    ``process_single`` is the only catch-all boundary: stage failures and
    unexpected exceptions both end with a structured outcome returned to the
    caller. A claimed headline is marked ``failed``; an unclaimed one is left
    as it was.
    """

    def __init__(
        self,
        store: object,
        researcher: ResearchClient,
        generator: GenerationProvider | None,
        *,
        notifier: EmailNotifier | None = None,
        recipients: Sequence[str] = (),
        batch_size: int = 5,
        auto_process: bool = False,
        pacing_s: float = BATCH_PACING_S,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.researcher = researcher
        self.generator = generator
        self.notifier = notifier
        self.recipients = tuple(recipients)
        self.batch_size = batch_size
        self.auto_process = auto_process
        self.pacing_s = pacing_s
        self.sleep = sleep
        self.clock = clock

    @classmethod
    def from_settings(cls, store: object, settings: Settings) -> "HeadlineProcessor":
        notifier = None
        if settings.email_notifications:
            smtp_config = SMTPConfig.from_settings(settings)
            notifier = EmailNotifier(smtp_config) if smtp_config is not None else None
        return cls(
            store,
            PerplexityClient(settings.perplexity_api_key, models=settings.perplexity_models),
            select_provider(settings),
            notifier=notifier,
            recipients=settings.notification_emails,
            batch_size=settings.batch_size,
            auto_process=settings.auto_process,
        )

    # ------------------------------------------------------------------
    # Single headline
    # ------------------------------------------------------------------

    def process_single(self, headline_id: int) -> ProcessOutcome:
        start = time.perf_counter()
        headline_text = ""
        claimed = False
        try:
            headline = self.store.get_headline(headline_id)
            if headline is None:
                return ProcessOutcome(
                    headline_id=headline_id,
                    success=False,
                    message="Headline not found",
                    failure=StageFailure(FailureKind.NOT_FOUND, "Headline not found"),
                )
            headline_text = headline.text
            if not can_transition_headline(headline.status, HeadlineStatus.PROCESSING):
                message = f"Headline is not pending (status: {headline.status})"
                return ProcessOutcome(
                    headline_id=headline_id,
                    success=False,
                    message=message,
                    headline=headline.text,
                    failure=StageFailure(FailureKind.INVALID_STATE, message),
                )
            if not self.store.claim_headline(headline_id):
                message = "Headline is already being processed"
                return ProcessOutcome(
                    headline_id=headline_id,
                    success=False,
                    message=message,
                    headline=headline.text,
                    failure=StageFailure(FailureKind.INVALID_STATE, message),
                )
            claimed = True

            _log_event(headline_id=headline_id, stage="process", event="start")
            return self._run_stages(replace(headline, status=HeadlineStatus.PROCESSING), start)
        except Exception as error:  # noqa: BLE001
            LOGGER.exception("Unexpected error while processing headline %s", headline_id)
            message = f"Processing error: {error}"
            # An unclaimed headline is still pending and stays that way.
            if claimed:
                self._mark_failed(headline_id, message)
            write_log(
                self.store,
                LogEntry(
                    process_type=ProcessType.ERROR,
                    status=LogStatus.FAILED,
                    message=message,
                    headline_id=headline_id,
                    execution_time=time.perf_counter() - start,
                ),
            )
            _log_event(
                headline_id=headline_id,
                stage="process",
                event="error",
                elapsed_s=time.perf_counter() - start,
                error=str(error),
            )
            return ProcessOutcome(
                headline_id=headline_id,
                success=False,
                message=message,
                headline=headline_text,
                failure=StageFailure(FailureKind.INTERNAL, str(error)),
            )

    def _run_stages(self, headline: Headline, start: float) -> ProcessOutcome:
        research = run_research_pass(self.store, self.researcher, headline_id=headline.id, headline=headline.text)
        if isinstance(research, StageFailure):
            return self._fail(headline, "research", research, start)
        headline = self._move_headline(headline, HeadlineStatus.RESEARCHED)
        _log_event(
            headline_id=headline.id,
            stage="research",
            event="complete",
            elapsed_s=time.perf_counter() - start,
            research_id=research.research_id,
            sources=len(research.sources),
            quality_score=research.quality_score,
        )

        draft = run_draft_pass(
            self.store,
            self.generator,
            headline_id=headline.id,
            headline=headline.text,
            research_text=research.text,
            sources=research.sources,
        )
        if isinstance(draft, StageFailure):
            return self._fail(headline, "generation", draft, start)

        article_id = self.store.insert_article(
            headline_id=headline.id,
            research_id=research.research_id,
            content=draft.content,
            llm_used=draft.llm_used,
            quality_score=draft.quality_score,
        )
        headline = self._move_headline(headline, HeadlineStatus.GENERATED)
        self._notify_reviewers(headline, article_id, draft.quality_score)

        _log_event(
            headline_id=headline.id,
            stage="process",
            event="complete",
            elapsed_s=time.perf_counter() - start,
            article_id=article_id,
            llm_used=draft.llm_used,
            quality_score=draft.quality_score,
            tokens_used=research.tokens_used + draft.tokens_used,
        )
        return ProcessOutcome(
            headline_id=headline.id,
            success=True,
            message="Article generated successfully",
            headline=headline.text,
            article_id=article_id,
            quality_score=draft.quality_score,
        )

    def _fail(self, headline: Headline, stage: str, failure: StageFailure, start: float) -> ProcessOutcome:
        message = f"{stage.capitalize()} failed: {failure.message}"
        self._move_headline(headline, HeadlineStatus.FAILED, notes=message)
        _log_event(
            headline_id=headline.id,
            stage=stage,
            event="failed",
            elapsed_s=time.perf_counter() - start,
            kind=failure.kind.value,
            error=failure.message,
        )
        return ProcessOutcome(
            headline_id=headline.id,
            success=False,
            message=message,
            headline=headline.text,
            failure=failure,
        )

    def _move_headline(self, headline: Headline, target: HeadlineStatus, notes: str | None = None) -> Headline:
        check_headline_transition(headline.status, target)
        self.store.update_headline_status(headline.id, target, notes=notes)
        return replace(headline, status=target)

    def _mark_failed(self, headline_id: int, message: str) -> None:
        try:
            current = self.store.get_headline(headline_id)
            if current is None or not can_transition_headline(current.status, HeadlineStatus.FAILED):
                LOGGER.warning("Headline %s cannot be marked failed from its current status", headline_id)
                return
            self._move_headline(current, HeadlineStatus.FAILED, notes=message)
        except Exception as error:  # noqa: BLE001
            LOGGER.warning("Could not mark headline %s as failed: %s", headline_id, error)

    def _notify_reviewers(self, headline: Headline, article_id: int, quality_score: int) -> None:
        if self.notifier is None or not self.recipients:
            return
        subject, body = build_review_notification(
            headline=headline.text,
            category=headline.category,
            article_id=article_id,
            quality_score=quality_score,
            generated_at=self.clock(),
        )
        try:
            self.notifier.notify(self.recipients, subject, body)
        except Exception as error:  # noqa: BLE001
            LOGGER.warning("Review notification for article %s failed: %s", article_id, error)

    # ------------------------------------------------------------------
    # Batches and maintenance
    # ------------------------------------------------------------------

    def _process_sequentially(self, headline_ids: Sequence[int]) -> BatchSummary:
        outcomes: list[ProcessOutcome] = []
        for index, headline_id in enumerate(headline_ids):
            if index:
                self.sleep(self.pacing_s)
            outcomes.append(self.process_single(headline_id))
        return BatchSummary.from_outcomes(outcomes)

    def process_batch(self, batch_size: int | None = None) -> BatchSummary:
        """Process up to ``batch_size`` pending headlines, highest priority and oldest first."""

        limit = batch_size if batch_size is not None else self.batch_size
        start = time.perf_counter()
        try:
            pending = self.store.list_headlines_by_status(HeadlineStatus.PENDING, limit)
        except Exception as error:  # noqa: BLE001
            return self._listing_failed("batch", error, start)
        summary = self._process_sequentially([headline.id for headline in pending])
        _log_event(
            headline_id=None,
            stage="batch",
            event="complete",
            elapsed_s=time.perf_counter() - start,
            processed=summary.processed,
            successful=summary.successful,
            failed=summary.failed,
        )
        return summary

    def retry_failed(self, limit: int = 5) -> BatchSummary:
        """Reset failed headlines idle for at least the backoff window and reprocess them."""

        cutoff = self.clock() - RETRY_BACKOFF
        start = time.perf_counter()
        try:
            eligible = self.store.list_failed_headlines(before=cutoff, limit=limit)
        except Exception as error:  # noqa: BLE001
            return self._listing_failed("retry", error, start)

        reset_ids: list[int] = []
        for headline in eligible:
            try:
                check_headline_transition(headline.status, HeadlineStatus.PENDING)
                if self.store.reset_failed_headline(headline.id):
                    reset_ids.append(headline.id)
            except Exception as error:  # noqa: BLE001
                LOGGER.warning("Could not reset headline %s for retry: %s", headline.id, error)
        _log_event(headline_id=None, stage="retry", event="reset", count=len(reset_ids))
        return self._process_sequentially(reset_ids)

    def _listing_failed(self, stage: str, error: Exception, start: float) -> BatchSummary:
        LOGGER.exception("Could not list headlines for %s", stage)
        write_log(
            self.store,
            LogEntry(
                process_type=ProcessType.ERROR,
                status=LogStatus.FAILED,
                message=f"Could not list headlines for {stage}: {error}",
                execution_time=time.perf_counter() - start,
            ),
        )
        _log_event(headline_id=None, stage=stage, event="error", error=str(error))
        return BatchSummary(error=str(error))

    def cleanup(self, days: int = HEADLINE_RETENTION_DAYS) -> int:
        """Delete published and generated headlines older than ``days``; failed ones are kept."""

        deleted = self.store.delete_headlines(statuses=RETENTION_STATUSES, before=self.clock() - timedelta(days=days))
        _log_event(headline_id=None, stage="cleanup", event="complete", deleted=deleted, days=days)
        return deleted

    def run_scheduled(self) -> BatchSummary | None:
        """Entry for the periodic job; does nothing unless auto-processing is enabled."""

        if not self.auto_process:
            LOGGER.info("Auto-processing disabled; skipping scheduled batch")
            return None

        start = time.perf_counter()
        summary = self.process_batch()
        write_log(
            self.store,
            LogEntry(
                process_type=ProcessType.BATCH,
                status=LogStatus.COMPLETED,
                message=f"Processed {summary.processed} headlines: {summary.successful} successful, {summary.failed} failed",
                execution_time=time.perf_counter() - start,
            ),
        )
        return summary

    def processing_stats(self, days: int = 7) -> dict[str, object]:
        return self.store.processing_stats(since=self.clock() - timedelta(days=days))


# ----------------------------------------------------------------------
# CLI
# ----------------------------------------------------------------------


def _review_item_to_dict(item: ReviewQueueItem) -> dict[str, object]:
    article = item.article
    return {
        "article_id": article.id,
        "headline_id": article.headline_id,
        "headline": item.headline,
        "category": item.category,
        "status": article.status.value,
        "llm_used": article.llm_used,
        "quality_score": article.quality_score,
        "created_at": article.created_at,
        "sources": len(item.sources),
    }


def _build_review_workflow(store: PostgresStore, settings: Settings) -> ReviewWorkflow:
    wordpress_config = WordPressConfig.from_settings(settings)
    publisher = WordPressPublisher(wordpress_config) if wordpress_config is not None else None
    return ReviewWorkflow(store, publisher, ImageService.from_settings(settings))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Medical news headline pipeline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create tables and indexes")

    add_parser = subparsers.add_parser("add", help="Queue one headline")
    add_parser.add_argument("headline")
    add_parser.add_argument("--priority", type=int, default=5, help="1 (urgent) to 6 (low)")
    add_parser.add_argument("--category", default=None)
    add_parser.add_argument("--notes", default=None)

    import_parser = subparsers.add_parser("import", help="Queue headlines from a text file, one per line")
    import_parser.add_argument("path", type=Path)
    import_parser.add_argument("--priority", type=int, default=5)
    import_parser.add_argument("--category", default=None)

    process_parser = subparsers.add_parser("process", help="Process one pending headline")
    process_parser.add_argument("headline_id", type=int)

    batch_parser = subparsers.add_parser("batch", help="Process a batch of pending headlines")
    batch_parser.add_argument("--size", type=int, default=None)

    retry_parser = subparsers.add_parser("retry", help="Retry failed headlines older than the backoff window")
    retry_parser.add_argument("--limit", type=int, default=5)

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete old finished headlines and rejected articles")
    cleanup_parser.add_argument("--days", type=int, default=HEADLINE_RETENTION_DAYS)
    cleanup_parser.add_argument("--rejected-days", type=int, default=REJECTED_RETENTION_DAYS)

    subparsers.add_parser("cron", help="Scheduled batch run; honours AUTO_PROCESS")

    review_parser = subparsers.add_parser("review", help="Apply an editorial decision to an article")
    review_parser.add_argument("article_id", type=int)
    review_parser.add_argument("decision", choices=[decision.value for decision in ReviewDecision])
    review_parser.add_argument("--notes", default="")
    review_parser.add_argument("--reviewer-id", type=int, default=None)

    pending_parser = subparsers.add_parser("pending-review", help="List articles awaiting review")
    pending_parser.add_argument("--limit", type=int, default=10)

    stats_parser = subparsers.add_parser("stats", help="Processing and workflow statistics")
    stats_parser.add_argument("--days", type=int, default=7)

    return parser


def _run_command(args: argparse.Namespace, store: PostgresStore, settings: Settings) -> dict[str, object]:
    if args.command == "init-db":
        store.apply_schema()
        return {"success": True, "message": "Schema applied"}

    if args.command == "add":
        try:
            headline_id = add_headline(
                store,
                args.headline,
                priority=args.priority,
                category=args.category,
                notes=args.notes,
            )
        except ValidationError as error:
            return {"success": False, "errors": error.errors}
        return {"success": True, "headline_id": headline_id}

    if args.command == "import":
        report = import_headlines(store, args.path, priority=args.priority, category=args.category)
        return {"success": True, **report.to_dict()}

    if args.command in {"review", "pending-review"}:
        workflow = _build_review_workflow(store, settings)
        if args.command == "pending-review":
            return {"success": True, "articles": [_review_item_to_dict(item) for item in workflow.pending_review(args.limit)]}
        outcome = workflow.apply_decision(args.article_id, args.decision, args.notes, args.reviewer_id)
        if isinstance(outcome, StageFailure):
            return {"success": False, "message": outcome.message, "failure": outcome.to_dict()}
        return outcome.to_dict()

    processor = HeadlineProcessor.from_settings(store, settings)

    if args.command == "process":
        outcome = processor.process_single(args.headline_id)
        return outcome.to_dict()
    if args.command == "batch":
        return processor.process_batch(args.size).to_dict()
    if args.command == "retry":
        summary = processor.retry_failed(args.limit)
        payload = summary.to_dict()
        if not summary.processed:
            payload["message"] = "No failed headlines to retry"
        return payload
    if args.command == "cleanup":
        deleted_headlines = processor.cleanup(args.days)
        deleted_articles = ReviewWorkflow(store).cleanup_old_articles(args.rejected_days)
        return {"success": True, "deleted_headlines": deleted_headlines, "deleted_rejected_articles": deleted_articles}
    if args.command == "cron":
        summary = processor.run_scheduled()
        if summary is None:
            return {"success": True, "message": "Auto-processing disabled", "processed": 0}
        return summary.to_dict()

    return {
        "success": True,
        "days": args.days,
        "processing": processor.processing_stats(args.days),
        "workflow": ReviewWorkflow(store).workflow_stats(args.days),
    }


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    settings = load_settings()
    store = PostgresStore.connect(settings.postgres_dsn)
    try:
        result = _run_command(args, store, settings)
    finally:
        store.close()

    print(json.dumps(result, indent=2, sort_keys=True, default=str))
    if result.get("success") is False:
        sys.exit(1)


if __name__ == "__main__":
    main()
