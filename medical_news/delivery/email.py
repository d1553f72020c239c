"""Plain-text e-mail notifications to editors over SMTP."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
import logging
import smtplib

from ..config import Settings

LOGGER = logging.getLogger("mednews.delivery.email")

REVIEW_SUBJECT = "[Medical News Automation] New Article Ready for Review"


@dataclass(frozen=True)
class SMTPConfig:
    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    sender: str = ""
    timeout_s: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SMTPConfig | None":
        if not settings.smtp_host:
            return None
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.smtp_sender or settings.smtp_username,
        )


class EmailNotifier:
    """Fire-and-forget notifier; delivery failures are logged, never raised."""

    def __init__(self, config: SMTPConfig) -> None:
        self._config = config

    def notify(self, recipients: Sequence[str], subject: str, body: str) -> bool:
        recipients = [address for address in dict.fromkeys(recipients) if address]
        if not recipients:
            return False

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._config.sender
        message["To"] = ", ".join(recipients)
        message.set_content(body)

        try:
            with smtplib.SMTP(self._config.host, self._config.port, timeout=self._config.timeout_s) as smtp:
                smtp.starttls()
                if self._config.username:
                    smtp.login(self._config.username, self._config.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as error:
            LOGGER.warning("Could not send notification '%s' to %d recipients: %s", subject, len(recipients), error)
            return False

        LOGGER.info("Sent notification '%s' to %d recipients", subject, len(recipients))
        return True


def build_review_notification(
    *,
    headline: str,
    category: str | None,
    article_id: int,
    quality_score: int | None,
    generated_at: datetime,
) -> tuple[str, str]:
    lines = [
        "A new medical news article has been generated and is ready for review.",
        "",
        f"Headline: {headline}",
        f"Category: {category or 'Uncategorized'}",
        f"Article ID: {article_id}",
        f"Quality score: {quality_score if quality_score is not None else 'n/a'}/10",
        f"Generated: {generated_at:%Y-%m-%d %H:%M:%S}",
        "",
        f"Review it with: python -m medical_news.pipeline review {article_id} <approve|reject|publish|request_changes>",
        "",
        "---",
        "Medical News Automation",
    ]
    return REVIEW_SUBJECT, "\n".join(lines)
