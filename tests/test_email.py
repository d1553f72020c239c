import smtplib
from datetime import UTC, datetime

from medical_news.delivery.email import REVIEW_SUBJECT, EmailNotifier, SMTPConfig, build_review_notification


class _FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout):
        self.host = host
        self.port = port
        self.calls = []
        self.messages = []
        _FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, username, password):
        self.calls.append(("login", username, password))

    def send_message(self, message):
        self.messages.append(message)


def test_notify_sends_one_message_to_unique_recipients(monkeypatch) -> None:
    _FakeSMTP.instances = []
    monkeypatch.setattr("medical_news.delivery.email.smtplib.SMTP", _FakeSMTP)
    notifier = EmailNotifier(SMTPConfig(host="smtp.example.org", username="bot", password="pw", sender="bot@example.org"))

    sent = notifier.notify(["a@example.org", "a@example.org", "", "b@example.org"], "Subject", "Body")

    smtp = _FakeSMTP.instances[0]
    message = smtp.messages[0]
    assert sent is True
    assert (smtp.host, smtp.port) == ("smtp.example.org", 587)
    assert smtp.calls == ["starttls", ("login", "bot", "pw")]
    assert message["To"] == "a@example.org, b@example.org"
    assert message["From"] == "bot@example.org"


def test_notify_failures_return_false(monkeypatch) -> None:
    def _refuse(host, port, timeout):
        raise smtplib.SMTPConnectError(421, b"busy")

    monkeypatch.setattr("medical_news.delivery.email.smtplib.SMTP", _refuse)
    notifier = EmailNotifier(SMTPConfig(host="smtp.example.org"))

    assert notifier.notify(["a@example.org"], "Subject", "Body") is False
    assert notifier.notify([], "Subject", "Body") is False


def test_review_notification_body() -> None:
    subject, body = build_review_notification(
        headline="Measles outbreak reported by CDC",
        category=None,
        article_id=42,
        quality_score=8,
        generated_at=datetime(2025, 3, 1, 12, 0, tzinfo=UTC),
    )

    assert subject == REVIEW_SUBJECT
    assert "Headline: Measles outbreak reported by CDC" in body
    assert "Category: Uncategorized" in body
    assert "Quality score: 8/10" in body
    assert "Generated: 2025-03-01 12:00:00" in body
    assert "review 42 <approve|reject|publish|request_changes>" in body
