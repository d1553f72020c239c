"""Static credibility scoring for cited domains and citation bookkeeping."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import Final, Protocol
from urllib.parse import urlparse

from ..models import CitedSource

LOGGER = logging.getLogger("mednews.verification.credibility")

HIGH_CREDIBILITY_DOMAINS: Final[frozenset[str]] = frozenset(
    {
        "who.int",
        "cdc.gov",
        "nih.gov",
        "pubmed.ncbi.nlm.nih.gov",
        "nejm.org",
        "thelancet.com",
        "bmj.com",
        "jama.jamanetwork.com",
        "nature.com",
        "cell.com",
        "science.org",
        "pnas.org",
        "mayoclinic.org",
        "clevelandclinic.org",
        "hopkinsmedicine.org",
    }
)

MEDIUM_CREDIBILITY_DOMAINS: Final[frozenset[str]] = frozenset(
    {
        "healthline.com",
        "webmd.com",
        "medscape.com",
        "reuters.com",
        "bbc.com",
        "cnn.com",
        "nytimes.com",
        "washingtonpost.com",
    }
)

HIGH_SCORE: Final[int] = 9
INSTITUTIONAL_SCORE: Final[int] = 8
MEDIUM_SCORE: Final[int] = 7
DEFAULT_SCORE: Final[int] = 5


class SourceSink(Protocol):
    def record_source_sighting(self, source: CitedSource) -> None: ...


def domain_of(url: str) -> str:
    """Lower-cased host without a leading ``www.``; empty when unparseable."""

    if not url:
        return ""
    try:
        host = urlparse(url.strip()).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def _is_institutional(domain: str) -> bool:
    labels = domain.split(".")
    return "gov" in labels[1:] or "edu" in labels[1:]


def score_url(url: str) -> int:
    """Return the 0-10 credibility score for a URL.

    The checks run in a fixed order: primary allow-list, secondary allow-list,
    ``.gov``/``.edu`` heuristic, then the neutral default.
    """

    domain = domain_of(url)
    if not domain:
        return DEFAULT_SCORE
    if domain in HIGH_CREDIBILITY_DOMAINS:
        return HIGH_SCORE
    if domain in MEDIUM_CREDIBILITY_DOMAINS:
        return MEDIUM_SCORE
    if _is_institutional(domain):
        return INSTITUTIONAL_SCORE
    return DEFAULT_SCORE


def record_sightings(sink: SourceSink, sources: Iterable[CitedSource]) -> int:
    """Persist one citation sighting per source; failures only warn."""

    recorded = 0
    for source in sources:
        if not source.url:
            continue
        try:
            sink.record_source_sighting(source)
        except Exception as error:  # noqa: BLE001
            LOGGER.warning("Could not record source sighting for %s: %s", source.url, error)
            continue
        recorded += 1
    return recorded
