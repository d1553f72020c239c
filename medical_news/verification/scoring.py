"""Heuristic quality scores for research output and generated articles."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import re

from ..models import CitedSource

_CITATION_PATTERN = re.compile(r"\[Source:.*?\]", re.IGNORECASE)

BASE_SCORE = 5
MAX_SCORE = 10
TARGET_WORDS = (500, 800)
PARTIAL_WORDS = 300
MAX_CITATION_POINTS = 3


@dataclass(frozen=True)
class ContentQuality:
    word_count: int
    citation_count: int
    has_disclaimer: bool
    paragraph_breaks: int
    score: int


def _clamp(score: int) -> int:
    return max(0, min(score, MAX_SCORE))


def count_citations(content: str) -> int:
    return len(_CITATION_PATTERN.findall(content))


def assess_content(content: str) -> ContentQuality:
    words = len(content.split())
    citations = count_citations(content)
    lowered = content.lower()
    has_disclaimer = "consult" in lowered and "healthcare" in lowered
    paragraph_breaks = content.count("\n\n")

    score = BASE_SCORE
    if TARGET_WORDS[0] <= words <= TARGET_WORDS[1]:
        score += 2
    elif PARTIAL_WORDS <= words < TARGET_WORDS[0]:
        score += 1
    score += min(citations, MAX_CITATION_POINTS)
    if has_disclaimer:
        score += 1
    if paragraph_breaks >= 3:
        score += 1

    return ContentQuality(
        word_count=words,
        citation_count=citations,
        has_disclaimer=has_disclaimer,
        paragraph_breaks=paragraph_breaks,
        score=_clamp(score),
    )


def score_content(content: str) -> int:
    """Return the 0-10 article quality score."""

    return assess_content(content).score


def score_research(research_text: str, sources: Sequence[CitedSource]) -> int:
    """Return the 1-10 research quality score stored alongside research records."""

    score = BASE_SCORE

    length = len(research_text)
    if length > 1000:
        score += 2
    elif length > 500:
        score += 1

    if len(sources) >= 5:
        score += 2
    elif len(sources) >= 3:
        score += 1

    if sources:
        average = sum(source.credibility_score for source in sources) / len(sources)
        if average >= 8:
            score += 2
        elif average >= 6:
            score += 1

    return max(1, min(score, MAX_SCORE))
