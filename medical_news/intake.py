"""Headline intake: validation, single adds and bulk import from text files."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Protocol

from .errors import ValidationError
from .models import HeadlineOrigin

LOGGER = logging.getLogger("mednews.intake")

MIN_HEADLINE_CHARS = 10
MAX_HEADLINE_CHARS = 500
PRIORITY_RANGE = (1, 6)

MEDICAL_KEYWORDS: tuple[str, ...] = (
    "health",
    "medical",
    "medicine",
    "disease",
    "treatment",
    "therapy",
    "hospital",
    "doctor",
    "patient",
    "clinical",
    "study",
    "research",
    "vaccine",
    "drug",
    "medication",
    "diagnosis",
    "symptoms",
    "cancer",
    "diabetes",
    "heart",
    "brain",
    "surgery",
    "virus",
    "bacteria",
    "who",
    "cdc",
    "fda",
    "pandemic",
    "epidemic",
    "outbreak",
)


class HeadlineSink(Protocol):
    def headline_text_exists(self, text: str) -> bool: ...

    def insert_headline(
        self,
        text: str,
        *,
        origin: str = "manual",
        priority: int = 5,
        category: str | None = None,
        notes: str | None = None,
    ) -> int: ...


@dataclass(frozen=True)
class RejectedLine:
    line_number: int
    text: str
    errors: list[str]


@dataclass(frozen=True)
class ImportReport:
    accepted: list[int] = field(default_factory=list)
    rejected: list[RejectedLine] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "accepted": len(self.accepted),
            "headline_ids": self.accepted,
            "rejected": [
                {"line": item.line_number, "headline": item.text, "errors": item.errors} for item in self.rejected
            ],
        }


def is_medical(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in MEDICAL_KEYWORDS)


def validate_headline(text: str, store: HeadlineSink, *, priority: int = 5) -> list[str]:
    """Return every validation problem with the headline; empty when it is acceptable."""

    errors: list[str] = []
    stripped = text.strip()
    if len(stripped) < MIN_HEADLINE_CHARS:
        errors.append(f"Headline too short (minimum {MIN_HEADLINE_CHARS} characters)")
    if len(stripped) > MAX_HEADLINE_CHARS:
        errors.append(f"Headline too long (maximum {MAX_HEADLINE_CHARS} characters)")
    if not is_medical(stripped):
        errors.append("Headline does not appear to be medical/health related")
    if not PRIORITY_RANGE[0] <= priority <= PRIORITY_RANGE[1]:
        errors.append(f"Priority must be between {PRIORITY_RANGE[0]} (urgent) and {PRIORITY_RANGE[1]} (low)")
    if stripped and store.headline_text_exists(stripped):
        errors.append("This headline has already been processed")
    return errors


def add_headline(
    store: HeadlineSink,
    text: str,
    *,
    origin: HeadlineOrigin | str = HeadlineOrigin.MANUAL,
    priority: int = 5,
    category: str | None = None,
    notes: str | None = None,
) -> int:
    """Validate and insert one pending headline, returning its id."""

    errors = validate_headline(text, store, priority=priority)
    if errors:
        raise ValidationError(errors)
    headline_id = store.insert_headline(
        text.strip(),
        origin=str(origin),
        priority=priority,
        category=category.strip() if category and category.strip() else None,
        notes=notes,
    )
    LOGGER.info("Queued headline %s (priority %s)", headline_id, priority)
    return headline_id


def read_headline_lines(path: Path) -> list[tuple[int, str]]:
    """Non-empty, non-comment lines with their 1-based line numbers."""

    lines: list[tuple[int, str]] = []
    for number, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        lines.append((number, line))
    return lines


def import_headlines(
    store: HeadlineSink,
    path: Path,
    *,
    priority: int = 5,
    category: str | None = None,
) -> ImportReport:
    report = ImportReport()
    for number, text in read_headline_lines(path):
        try:
            headline_id = add_headline(
                store,
                text,
                origin=HeadlineOrigin.BULK_IMPORT,
                priority=priority,
                category=category,
            )
        except ValidationError as error:
            report.rejected.append(RejectedLine(line_number=number, text=text, errors=error.errors))
            continue
        report.accepted.append(headline_id)

    LOGGER.info(
        "Imported %d headlines from %s (%d rejected)",
        len(report.accepted),
        path,
        len(report.rejected),
    )
    return report
