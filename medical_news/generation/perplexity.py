"""Search-augmented research client for the Perplexity chat completions API."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
import json
import logging
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..errors import ConfigurationError, EmptyResultError, PipelineError, ProviderError, TransportError

LOGGER = logging.getLogger("mednews.generation.perplexity")

PERPLEXITY_URL = "https://api.perplexity.ai/chat/completions"


@dataclass(frozen=True)
class ResearchResponse:
    text: str
    citations: list[Any] = field(default_factory=list)
    tokens_used: int = 0
    model: str = ""


def _error_message(body: bytes, status: int) -> str:
    text = body.decode("utf-8", errors="replace")
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return f"HTTP {status}: {text[:300]}"
    error = decoded.get("error") if isinstance(decoded, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return f"HTTP {status}: {text[:300]}"


def post_json(
    url: str,
    payload: dict[str, object],
    *,
    headers: dict[str, str],
    timeout_s: float,
) -> dict[str, Any]:
    """POST JSON and decode a JSON object, mapping failures to pipeline errors."""

    request = Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", "Accept": "application/json", **headers},
        method="POST",
    )
    try:
        with urlopen(request, timeout=timeout_s) as response:  # noqa: S310
            body = response.read()
    except HTTPError as exc:
        raise ProviderError(_error_message(exc.read() or b"", exc.code), status=exc.code) from exc
    except (URLError, TimeoutError, OSError) as exc:
        raise TransportError(f"request failed: {exc}") from exc

    try:
        decoded = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProviderError("invalid JSON response") from exc
    if not isinstance(decoded, dict):
        raise ProviderError("unexpected JSON response shape")
    return decoded


def _extract_content(payload: dict[str, Any]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    return content.strip() if isinstance(content, str) else ""


def _extract_citations(payload: dict[str, Any]) -> list[Any]:
    citations: list[Any] = []
    for key in ("search_results", "citations"):
        value = payload.get(key)
        if isinstance(value, list):
            citations.extend(item for item in value if isinstance(item, (str, dict)))
    return citations


def _total_tokens(payload: dict[str, Any]) -> int:
    usage = payload.get("usage")
    if isinstance(usage, dict) and isinstance(usage.get("total_tokens"), int):
        return usage["total_tokens"]
    return 0


class PerplexityClient:
    """Research client that falls through a fixed list of models."""

    def __init__(
        self,
        api_key: str,
        *,
        models: Sequence[str],
        url: str = PERPLEXITY_URL,
        timeout_s: float = 60.0,
        max_tokens: int = 2000,
        temperature: float = 0.2,
    ) -> None:
        self.api_key = api_key
        self.models = tuple(models)
        self.url = url
        self.timeout_s = timeout_s
        self.max_tokens = max_tokens
        self.temperature = temperature

    def research(self, system_prompt: str, user_prompt: str) -> ResearchResponse:
        if not self.api_key:
            raise ConfigurationError("Perplexity API key not configured")
        if not self.models:
            raise ConfigurationError("No Perplexity models configured")

        base_body: dict[str, object] = {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "return_citations": True,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        last_error: PipelineError | None = None
        for model in self.models:
            try:
                payload = post_json(self.url, {**base_body, "model": model}, headers=headers, timeout_s=self.timeout_s)
            except (TransportError, ProviderError) as error:
                LOGGER.warning("Research model %s failed; trying next model: %s", model, error)
                last_error = error
                continue

            text = _extract_content(payload)
            if not text:
                LOGGER.warning("Research model %s returned no content; trying next model", model)
                last_error = EmptyResultError(f"Research model {model} returned no content")
                continue

            return ResearchResponse(
                text=text,
                citations=_extract_citations(payload),
                tokens_used=_total_tokens(payload),
                model=model,
            )

        if last_error is not None:
            raise last_error
        raise ProviderError("All research models failed")
