"""Extract and deduplicate cited sources from research responses."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
import re
from typing import Any

from ..models import CitedSource
from ..verification.credibility import domain_of, score_url

URL_PATTERN = re.compile(r"https?://[^\s\]<>\"']+", re.IGNORECASE)
_TRAILING_PUNCTUATION = ".,;:!?*_"

# Reference-list shapes, checked in this order:
#   1. **Title:** https://...
#   [1] Title - https://...
#   1. Title (https://...)
#   1. Title: https://...
_REFERENCE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\d+\.\s*\*\*([^:*]+):\*\*\s*(https?://\S+)", re.MULTILINE),
    re.compile(r"^\[\d+\]\s*([^-\n]+?)\s*-\s*(https?://\S+)", re.MULTILINE),
    re.compile(r"^\d+\.\s*([^(\n]+?)\s*\((https?://[^)\s]+)\)", re.MULTILINE),
    re.compile(r"^\d+\.\s*([^:\n]+?):\s*(https?://\S+)", re.MULTILINE),
)


def clean_url(raw: str) -> str:
    """Trim punctuation that trails a URL in prose or markdown."""

    url = raw.strip().rstrip(_TRAILING_PUNCTUATION)
    while url.endswith(")") and url.count(")") > url.count("("):
        url = url[:-1].rstrip(_TRAILING_PUNCTUATION)
    return url


def make_source(url: str, *, title: str = "", snippet: str = "") -> CitedSource:
    return CitedSource(
        url=url,
        title=title.strip(),
        snippet=snippet.strip(),
        domain=domain_of(url),
        credibility_score=score_url(url),
    )


def sources_from_citations(citations: Iterable[Any]) -> list[CitedSource]:
    """Structured citations: plain URL strings or ``{url, title, text}`` objects."""

    sources: list[CitedSource] = []
    for citation in citations:
        if isinstance(citation, str):
            url, title, snippet = citation, "", ""
        elif isinstance(citation, dict):
            url = str(citation.get("url") or "")
            title = str(citation.get("title") or "")
            snippet = str(citation.get("text") or citation.get("snippet") or "")
        else:
            continue
        url = clean_url(url)
        if url:
            sources.append(make_source(url, title=title, snippet=snippet))
    return sources


def sources_from_inline_urls(text: str) -> list[CitedSource]:
    sources: list[CitedSource] = []
    for match in URL_PATTERN.finditer(text):
        url = clean_url(match.group(0))
        if url:
            sources.append(make_source(url))
    return sources


def sources_from_reference_list(text: str) -> list[CitedSource]:
    sources: list[CitedSource] = []
    for pattern in _REFERENCE_PATTERNS:
        for match in pattern.finditer(text):
            url = clean_url(match.group(2))
            if url:
                sources.append(make_source(url, title=match.group(1)))
    return sources


def merge_sources(*groups: Sequence[CitedSource]) -> list[CitedSource]:
    """Concatenate groups keeping the first occurrence of each exact URL."""

    seen: set[str] = set()
    merged: list[CitedSource] = []
    for group in groups:
        for source in group:
            if not source.url or source.url in seen:
                continue
            seen.add(source.url)
            merged.append(source)
    return merged


def extract_sources(text: str, citations: Iterable[Any] = ()) -> list[CitedSource]:
    """Structured citations first, then inline URLs, then reference-list lines."""

    return merge_sources(
        sources_from_citations(citations),
        sources_from_inline_urls(text),
        sources_from_reference_list(text),
    )
