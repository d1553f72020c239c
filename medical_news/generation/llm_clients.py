"""Article generation providers behind a common ``generate`` call."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Protocol

from anthropic import APIConnectionError as AnthropicConnectionError
from anthropic import APIStatusError as AnthropicStatusError
from anthropic import Anthropic, AnthropicError
from openai import APIConnectionError as OpenAIConnectionError
from openai import APIStatusError as OpenAIStatusError
from openai import OpenAI, OpenAIError

from ..config import Settings
from ..errors import EmptyResultError, ProviderError, TransportError

LOGGER = logging.getLogger("mednews.generation.llm")

GENERATION_MAX_TOKENS = 2500
GENERATION_TEMPERATURE = 0.3
GENERATION_TIMEOUT_S = 90.0


@dataclass(frozen=True)
class LLMResponse:
    text: str
    tokens_used: int = 0
    model: str = ""


class GenerationProvider(Protocol):
    name: str

    def generate(self, system_prompt: str, user_prompt: str) -> LLMResponse: ...


def _status_message(error: Exception) -> str:
    message = getattr(error, "message", None) or str(error)
    return f"API error: {message}"


class OpenAIProvider:
    name = "openai"

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        max_tokens: int = GENERATION_MAX_TOKENS,
        temperature: float = GENERATION_TEMPERATURE,
        timeout_s: float = GENERATION_TIMEOUT_S,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_s = timeout_s

    def generate(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        client = OpenAI(api_key=self.api_key, timeout=self.timeout_s)
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except OpenAIConnectionError as exc:
            raise TransportError(f"OpenAI request failed: {exc}") from exc
        except OpenAIStatusError as exc:
            raise ProviderError(_status_message(exc), status=getattr(exc, "status_code", None)) from exc
        except OpenAIError as exc:
            raise ProviderError(f"OpenAI request failed: {exc}") from exc

        choices = getattr(response, "choices", None) or []
        text = (choices[0].message.content or "").strip() if choices else ""
        if not text:
            raise EmptyResultError("No content returned from OpenAI")

        usage = getattr(response, "usage", None)
        return LLMResponse(
            text=text,
            tokens_used=int(getattr(usage, "total_tokens", 0) or 0),
            model=self.model,
        )


class ClaudeProvider:
    name = "claude"

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        max_tokens: int = GENERATION_MAX_TOKENS,
        temperature: float = GENERATION_TEMPERATURE,
        timeout_s: float = GENERATION_TIMEOUT_S,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_s = timeout_s

    def generate(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        client = Anthropic(api_key=self.api_key, timeout=self.timeout_s)
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except AnthropicConnectionError as exc:
            raise TransportError(f"Claude request failed: {exc}") from exc
        except AnthropicStatusError as exc:
            raise ProviderError(_status_message(exc), status=getattr(exc, "status_code", None)) from exc
        except AnthropicError as exc:
            raise ProviderError(f"Claude request failed: {exc}") from exc

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text").strip()
        if not text:
            raise EmptyResultError("No content returned from Claude")

        usage = getattr(response, "usage", None)
        tokens = int(getattr(usage, "input_tokens", 0) or 0) + int(getattr(usage, "output_tokens", 0) or 0)
        return LLMResponse(text=text, tokens_used=tokens, model=self.model)


def build_provider(name: str, settings: Settings) -> GenerationProvider | None:
    """Return the named provider when its credential is configured."""

    if name == "openai" and settings.openai_api_key:
        return OpenAIProvider(settings.openai_api_key, model=settings.openai_model_id)
    if name == "claude" and settings.anthropic_api_key:
        return ClaudeProvider(settings.anthropic_api_key, model=settings.anthropic_model_id)
    return None


def select_provider(settings: Settings) -> GenerationProvider | None:
    """Preferred provider if its key is present, else the other one, else None."""

    preferred = build_provider(settings.preferred_llm, settings)
    if preferred is not None:
        return preferred

    for name in ("openai", "claude"):
        if name == settings.preferred_llm:
            continue
        fallback = build_provider(name, settings)
        if fallback is not None:
            LOGGER.info("Preferred generation provider %s has no key; using %s", settings.preferred_llm, name)
            return fallback
    return None
