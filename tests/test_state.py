import pytest

from medical_news.errors import InvalidTransition
from medical_news.models import ArticleStatus, HeadlineStatus
from medical_news.state import (
    HEADLINE_TRANSITIONS,
    can_transition_article,
    can_transition_headline,
    check_article_transition,
    check_headline_transition,
)


def test_headline_happy_path_is_allowed() -> None:
    path = [
        HeadlineStatus.PENDING,
        HeadlineStatus.PROCESSING,
        HeadlineStatus.RESEARCHED,
        HeadlineStatus.GENERATED,
        HeadlineStatus.APPROVED,
        HeadlineStatus.PUBLISHED,
    ]
    for current, target in zip(path, path[1:]):
        check_headline_transition(current, target)


def test_published_headline_is_terminal() -> None:
    assert HEADLINE_TRANSITIONS[HeadlineStatus.PUBLISHED] == frozenset()
    with pytest.raises(InvalidTransition):
        check_headline_transition(HeadlineStatus.PUBLISHED, HeadlineStatus.FAILED)


def test_failed_headline_only_returns_to_pending() -> None:
    assert can_transition_headline("failed", "pending")
    assert not can_transition_headline("failed", "processing")
    assert not can_transition_headline("pending", "generated")


def test_article_decisions() -> None:
    assert can_transition_article(ArticleStatus.DRAFT, ArticleStatus.PUBLISHED)
    assert can_transition_article(ArticleStatus.APPROVED, ArticleStatus.PUBLISHED)
    assert can_transition_article(ArticleStatus.UNDER_REVIEW, ArticleStatus.UNDER_REVIEW)
    assert not can_transition_article(ArticleStatus.REJECTED, ArticleStatus.APPROVED)

    with pytest.raises(InvalidTransition, match="article cannot move from published to rejected"):
        check_article_transition(ArticleStatus.PUBLISHED, ArticleStatus.REJECTED)
