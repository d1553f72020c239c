"""Status transition tables for headlines and articles."""

from __future__ import annotations

from typing import Final

from .errors import InvalidTransition
from .models import ArticleStatus, HeadlineStatus

HEADLINE_TRANSITIONS: Final[dict[HeadlineStatus, frozenset[HeadlineStatus]]] = {
    HeadlineStatus.PENDING: frozenset({HeadlineStatus.PROCESSING}),
    HeadlineStatus.PROCESSING: frozenset({HeadlineStatus.RESEARCHED, HeadlineStatus.FAILED}),
    HeadlineStatus.RESEARCHED: frozenset({HeadlineStatus.GENERATED, HeadlineStatus.FAILED}),
    HeadlineStatus.GENERATED: frozenset(
        {HeadlineStatus.APPROVED, HeadlineStatus.PUBLISHED, HeadlineStatus.FAILED}
    ),
    HeadlineStatus.APPROVED: frozenset({HeadlineStatus.PUBLISHED, HeadlineStatus.FAILED}),
    HeadlineStatus.PUBLISHED: frozenset(),
    # Only the explicit retry operation moves failed back to pending.
    HeadlineStatus.FAILED: frozenset({HeadlineStatus.PENDING}),
}

ARTICLE_TRANSITIONS: Final[dict[ArticleStatus, frozenset[ArticleStatus]]] = {
    ArticleStatus.DRAFT: frozenset(
        {ArticleStatus.UNDER_REVIEW, ArticleStatus.APPROVED, ArticleStatus.PUBLISHED, ArticleStatus.REJECTED}
    ),
    ArticleStatus.UNDER_REVIEW: frozenset(
        {ArticleStatus.UNDER_REVIEW, ArticleStatus.APPROVED, ArticleStatus.PUBLISHED, ArticleStatus.REJECTED}
    ),
    ArticleStatus.APPROVED: frozenset({ArticleStatus.PUBLISHED, ArticleStatus.REJECTED, ArticleStatus.UNDER_REVIEW}),
    ArticleStatus.PUBLISHED: frozenset(),
    ArticleStatus.REJECTED: frozenset(),
}


def can_transition_headline(current: HeadlineStatus | str, target: HeadlineStatus | str) -> bool:
    return HeadlineStatus(target) in HEADLINE_TRANSITIONS[HeadlineStatus(current)]


def can_transition_article(current: ArticleStatus | str, target: ArticleStatus | str) -> bool:
    return ArticleStatus(target) in ARTICLE_TRANSITIONS[ArticleStatus(current)]


def check_headline_transition(current: HeadlineStatus | str, target: HeadlineStatus | str) -> None:
    if not can_transition_headline(current, target):
        raise InvalidTransition(f"headline cannot move from {current} to {target}")


def check_article_transition(current: ArticleStatus | str, target: ArticleStatus | str) -> None:
    if not can_transition_article(current, target):
        raise InvalidTransition(f"article cannot move from {current} to {target}")
