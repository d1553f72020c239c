"""Draft pass: generate the article body from research and score it."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging
import time

from ..errors import ConfigurationError, FailureKind, PipelineError, StageFailure
from ..models import CitedSource, LogEntry, LogStatus, ProcessType
from ..storage import write_log
from ..verification.scoring import score_content
from .llm_clients import GenerationProvider
from .prompts import build_article_prompt

LOGGER = logging.getLogger("mednews.generation.draft")


@dataclass(frozen=True)
class DraftResult:
    content: str
    llm_used: str
    quality_score: int
    tokens_used: int


def run_draft_pass(
    store: object,
    provider: GenerationProvider | None,
    *,
    headline_id: int,
    headline: str,
    research_text: str,
    sources: Sequence[CitedSource],
) -> DraftResult | StageFailure:
    """Produce an article with inline ``[Source: URL]`` citations.

    Execution time and token usage are logged whether or not generation succeeds.
    """

    start = time.perf_counter()

    if provider is None:
        failure = StageFailure.from_error(ConfigurationError("No generation API key configured"))
        write_log(
            store,
            LogEntry(
                process_type=ProcessType.GENERATION,
                status=LogStatus.FAILED,
                message=failure.message,
                headline_id=headline_id,
                execution_time=time.perf_counter() - start,
            ),
        )
        return failure

    system_prompt, user_prompt = build_article_prompt(headline=headline, research=research_text, sources=sources)

    try:
        response = provider.generate(system_prompt, user_prompt)
    except PipelineError as error:
        write_log(
            store,
            LogEntry(
                process_type=ProcessType.GENERATION,
                status=LogStatus.FAILED,
                message=f"{provider.name} generation failed: {error}",
                headline_id=headline_id,
                execution_time=time.perf_counter() - start,
            ),
        )
        return StageFailure.from_error(error)
    except Exception as error:  # noqa: BLE001
        LOGGER.exception("Unexpected %s generation error for headline %s", provider.name, headline_id)
        write_log(
            store,
            LogEntry(
                process_type=ProcessType.GENERATION,
                status=LogStatus.FAILED,
                message=f"{provider.name} generation failed: {error}",
                headline_id=headline_id,
                execution_time=time.perf_counter() - start,
            ),
        )
        return StageFailure(FailureKind.INTERNAL, f"Unexpected generation error: {error}")

    quality_score = score_content(response.text)
    write_log(
        store,
        LogEntry(
            process_type=ProcessType.GENERATION,
            status=LogStatus.COMPLETED,
            message=f"Article generated using {provider.name} (quality {quality_score}/10)",
            headline_id=headline_id,
            execution_time=time.perf_counter() - start,
            tokens_used=response.tokens_used,
        ),
    )

    return DraftResult(
        content=response.text,
        llm_used=provider.name,
        quality_score=quality_score,
        tokens_used=response.tokens_used,
    )
