"""Research pass: query the search LLM, collect sources and persist the research record."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Protocol

from ..errors import FailureKind, PersistenceError, PipelineError, StageFailure
from ..models import CitedSource, LogEntry, LogStatus, ProcessType
from ..processing.sources import extract_sources
from ..storage import write_log
from ..verification.credibility import record_sightings
from ..verification.scoring import score_research
from .perplexity import ResearchResponse
from .prompts import build_research_prompt

LOGGER = logging.getLogger("mednews.generation.research")


class ResearchClient(Protocol):
    def research(self, system_prompt: str, user_prompt: str) -> ResearchResponse: ...


@dataclass(frozen=True)
class ResearchResult:
    research_id: int
    query: str
    text: str
    sources: list[CitedSource]
    quality_score: int
    tokens_used: int
    model: str


def run_research_pass(
    store: object,
    client: ResearchClient,
    *,
    headline_id: int,
    headline: str,
) -> ResearchResult | StageFailure:
    """Research one headline and persist the result.

    Client and persistence errors come back as a ``StageFailure``; the caller
    owns the headline status transition in both cases.
    """

    start = time.perf_counter()
    system_prompt, user_prompt = build_research_prompt(headline)

    try:
        response = client.research(system_prompt, user_prompt)
    except PipelineError as error:
        write_log(
            store,
            LogEntry(
                process_type=ProcessType.RESEARCH,
                status=LogStatus.FAILED,
                message=f"Research failed: {error}",
                headline_id=headline_id,
                execution_time=time.perf_counter() - start,
            ),
        )
        return StageFailure.from_error(error)
    except Exception as error:  # noqa: BLE001
        LOGGER.exception("Unexpected research error for headline %s", headline_id)
        write_log(
            store,
            LogEntry(
                process_type=ProcessType.RESEARCH,
                status=LogStatus.FAILED,
                message=f"Research failed: {error}",
                headline_id=headline_id,
                execution_time=time.perf_counter() - start,
            ),
        )
        return StageFailure(FailureKind.INTERNAL, f"Unexpected research error: {error}")

    sources = extract_sources(response.text, response.citations)
    quality_score = score_research(response.text, sources)

    try:
        research_id = store.insert_research(
            headline_id=headline_id,
            query=user_prompt,
            response=response.text,
            sources=sources,
            quality_score=quality_score,
        )
    except Exception as error:  # noqa: BLE001
        LOGGER.warning("Could not persist research for headline %s: %s", headline_id, error)
        return StageFailure.from_error(PersistenceError(f"Failed to save research: {error}"))

    record_sightings(store, sources)

    elapsed = time.perf_counter() - start
    write_log(
        store,
        LogEntry(
            process_type=ProcessType.RESEARCH,
            status=LogStatus.COMPLETED,
            message=f"Research completed with {len(sources)} sources using {response.model}",
            headline_id=headline_id,
            execution_time=elapsed,
            tokens_used=response.tokens_used,
        ),
    )

    return ResearchResult(
        research_id=research_id,
        query=user_prompt,
        text=response.text,
        sources=sources,
        quality_score=quality_score,
        tokens_used=response.tokens_used,
        model=response.model,
    )
