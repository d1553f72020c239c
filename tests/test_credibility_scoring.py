import pytest

from medical_news.models import CitedSource
from medical_news.verification.credibility import domain_of, record_sightings, score_url


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://www.who.int/news-room/fact-sheets", 9),
        ("https://pubmed.ncbi.nlm.nih.gov/12345/", 9),
        ("https://www.healthline.com/nutrition/vitamin-d", 7),
        ("https://med.stanford.edu/news/2024/study.html", 8),
        ("https://www.fda.gov/drugs", 8),
        ("https://random-wellness-site.net/post", 5),
        ("", 5),
        ("not a url", 5),
    ],
)
def test_score_url_classification_order(url, expected) -> None:
    assert score_url(url) == expected


def test_domain_of_strips_www_and_lowercases() -> None:
    assert domain_of("https://WWW.NEJM.org/doi/full/10.1056") == "nejm.org"
    assert domain_of("http://[::1") == ""


def test_record_sightings_keeps_first_score_and_counts_repeats(store) -> None:
    first = CitedSource(url="https://example.org/a", domain="example.org", credibility_score=5)
    repeat = CitedSource(url="https://example.org/a", domain="example.org", credibility_score=9)

    assert record_sightings(store, [first]) == 1
    assert record_sightings(store, [repeat]) == 1

    record = store.get_source("https://example.org/a")
    assert record.times_cited == 2
    assert record.credibility_score == 5


def test_record_sightings_failures_only_warn(caplog) -> None:
    class _BrokenSink:
        def record_source_sighting(self, source):
            raise RuntimeError("database is down")

    sources = [CitedSource(url="https://example.org/a"), CitedSource(url="")]

    assert record_sightings(_BrokenSink(), sources) == 0
    assert "database is down" in caplog.text
