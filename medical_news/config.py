"""Runtime configuration for the medical news pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path
import re

GENERATION_PROVIDERS: tuple[str, ...] = ("openai", "claude")


@dataclass(frozen=True)
class Settings:
    """Environment-backed application settings."""

    # Postgres
    postgres_dsn: str

    # Research (Perplexity)
    perplexity_api_key: str = ""
    perplexity_models: tuple[str, ...] = ("sonar-pro", "sonar")

    # Generation
    openai_api_key: str = ""
    openai_model_id: str = "gpt-4o"
    anthropic_api_key: str = ""
    anthropic_model_id: str = "claude-3-5-sonnet-latest"
    preferred_llm: str = "openai"

    # Pipeline behaviour
    batch_size: int = 5
    auto_process: bool = False
    email_notifications: bool = True

    # Notification delivery
    notification_emails: tuple[str, ...] = ()
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_sender: str = ""

    # Publish target
    wordpress_url: str = ""
    wordpress_username: str = ""
    wordpress_app_password: str = ""

    # Imagery
    unsplash_access_key: str = ""
    openai_image_model_id: str = "dall-e-3"


def _load_settings_from_markdown(path: Path) -> dict[str, str]:
    """Parse ``| Setting | Value |`` rows from a markdown file.

    Only rows whose setting name matches ``[A-Z0-9_]+`` are returned so that
    separator and header lines are silently ignored.
    """
    if not path.exists():
        return {}

    row_pattern = re.compile(r"^\|\s*([A-Z0-9_]+)\s*\|\s*(\S+)\s*\|")
    settings: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        m = row_pattern.match(line)
        if m:
            settings[m.group(1)] = m.group(2)
    return settings


_SETTINGS_FILE = Path(__file__).resolve().parent / "settings.md"


def _get_env(name: str, *, default: str | None = None, required: bool = False) -> str:
    value = os.getenv(name, default)
    if required and (value is None or value == ""):
        raise ValueError(f"Missing required environment variable: {name}")
    if value is None:
        return ""
    return value


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _split_list(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load and cache Settings from environment variables.

    Model defaults are read from ``medical_news/settings.md``. Environment
    variables always take precedence over values defined in that file.
    """
    md = _load_settings_from_markdown(_SETTINGS_FILE)

    def _md(name: str, fallback: str) -> str:
        return md.get(name, fallback)

    preferred_llm = _get_env("PREFERRED_LLM", default="openai").strip().lower()
    if preferred_llm not in GENERATION_PROVIDERS:
        raise ValueError(f"PREFERRED_LLM must be one of {', '.join(GENERATION_PROVIDERS)}; got {preferred_llm!r}")

    return Settings(
        postgres_dsn=_get_env("POSTGRES_DSN", required=True),
        perplexity_api_key=_get_env("PERPLEXITY_API_KEY"),
        perplexity_models=_split_list(_get_env("PERPLEXITY_MODELS", default=_md("PERPLEXITY_MODELS", "sonar-pro,sonar"))),
        openai_api_key=_get_env("OPENAI_API_KEY"),
        openai_model_id=_get_env("OPENAI_MODEL_ID", default=_md("OPENAI_MODEL_ID", "gpt-4o")),
        anthropic_api_key=_get_env("ANTHROPIC_API_KEY"),
        anthropic_model_id=_get_env("ANTHROPIC_MODEL_ID", default=_md("ANTHROPIC_MODEL_ID", "claude-3-5-sonnet-latest")),
        preferred_llm=preferred_llm,
        batch_size=_get_int("BATCH_SIZE", 5),
        auto_process=_get_bool("AUTO_PROCESS", False),
        email_notifications=_get_bool("EMAIL_NOTIFICATIONS", True),
        notification_emails=_split_list(_get_env("NOTIFICATION_EMAILS")),
        smtp_host=_get_env("SMTP_HOST"),
        smtp_port=_get_int("SMTP_PORT", 587),
        smtp_username=_get_env("SMTP_USERNAME"),
        smtp_password=_get_env("SMTP_PASSWORD"),
        smtp_sender=_get_env("SMTP_SENDER"),
        wordpress_url=_get_env("WORDPRESS_URL"),
        wordpress_username=_get_env("WORDPRESS_USERNAME"),
        wordpress_app_password=_get_env("WORDPRESS_APP_PASSWORD"),
        unsplash_access_key=_get_env("UNSPLASH_ACCESS_KEY"),
        openai_image_model_id=_get_env("OPENAI_IMAGE_MODEL_ID", default=_md("OPENAI_IMAGE_MODEL_ID", "dall-e-3")),
    )
