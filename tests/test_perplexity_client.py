from io import BytesIO
import json
from urllib.error import HTTPError, URLError

import pytest

from medical_news.errors import ConfigurationError, EmptyResultError, ProviderError, TransportError
from medical_news.generation.perplexity import PerplexityClient


class _Response:
    def __init__(self, payload: dict):
        self._payload = json.dumps(payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def read(self) -> bytes:
        return self._payload


def _completion(text: str, **extra) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}], "usage": {"total_tokens": 321}, **extra}


def test_falls_through_models_until_one_succeeds(monkeypatch) -> None:
    seen_models: list[str] = []

    def fake_urlopen(request, timeout):
        body = json.loads(request.data.decode("utf-8"))
        seen_models.append(body["model"])
        assert timeout == 60.0
        assert request.headers["Authorization"] == "Bearer pplx-key"
        assert body["return_citations"] is True
        if body["model"] == "sonar-pro":
            raise HTTPError(request.full_url, 503, "Unavailable", hdrs={}, fp=BytesIO(b'{"error": {"message": "overloaded"}}'))
        return _Response(_completion("Research text", citations=["https://www.who.int/a"]))

    monkeypatch.setattr("medical_news.generation.perplexity.urlopen", fake_urlopen)

    response = PerplexityClient("pplx-key", models=("sonar-pro", "sonar")).research("sys", "user")

    assert seen_models == ["sonar-pro", "sonar"]
    assert response.text == "Research text"
    assert response.model == "sonar"
    assert response.tokens_used == 321
    assert response.citations == ["https://www.who.int/a"]


def test_missing_key_fails_without_network(monkeypatch) -> None:
    def fake_urlopen(request, timeout):
        raise AssertionError("no request expected")

    monkeypatch.setattr("medical_news.generation.perplexity.urlopen", fake_urlopen)

    with pytest.raises(ConfigurationError):
        PerplexityClient("", models=("sonar",)).research("sys", "user")


def test_returns_last_error_when_every_model_fails(monkeypatch) -> None:
    calls = {"count": 0}

    def fake_urlopen(request, timeout):
        calls["count"] += 1
        if calls["count"] == 1:
            raise URLError("connection reset")
        raise HTTPError(request.full_url, 401, "Unauthorized", hdrs={}, fp=BytesIO(b'{"error": {"message": "bad key"}}'))

    monkeypatch.setattr("medical_news.generation.perplexity.urlopen", fake_urlopen)

    with pytest.raises(ProviderError) as excinfo:
        PerplexityClient("pplx-key", models=("sonar-pro", "sonar")).research("sys", "user")

    assert str(excinfo.value) == "bad key"
    assert excinfo.value.status == 401
    assert calls["count"] == 2


def test_transport_error_on_single_model(monkeypatch) -> None:
    def fake_urlopen(request, timeout):
        raise TimeoutError("timed out")

    monkeypatch.setattr("medical_news.generation.perplexity.urlopen", fake_urlopen)

    with pytest.raises(TransportError):
        PerplexityClient("pplx-key", models=("sonar",)).research("sys", "user")


def test_empty_content_is_a_failure(monkeypatch) -> None:
    monkeypatch.setattr(
        "medical_news.generation.perplexity.urlopen",
        lambda request, timeout: _Response(_completion("   ")),
    )

    with pytest.raises(EmptyResultError):
        PerplexityClient("pplx-key", models=("sonar",)).research("sys", "user")


def test_search_results_are_collected_before_plain_citations(monkeypatch) -> None:
    payload = _completion(
        "Body",
        search_results=[{"title": "WHO", "url": "https://www.who.int/a", "snippet": "s"}],
        citations=["https://www.who.int/a", "https://www.cdc.gov/b"],
    )
    monkeypatch.setattr("medical_news.generation.perplexity.urlopen", lambda request, timeout: _Response(payload))

    response = PerplexityClient("pplx-key", models=("sonar",)).research("sys", "user")

    assert response.citations[0] == {"title": "WHO", "url": "https://www.who.int/a", "snippet": "s"}
    assert response.citations[1:] == ["https://www.who.int/a", "https://www.cdc.gov/b"]
