"""Tests for paperfeed/publishers.py and paperfeed/render.py"""

from __future__ import annotations

import io
import smtplib
import threading
import time
from email import message_from_string
from unittest.mock import MagicMock

import pytest

from paperfeed.discord import DiscordPublisher
from paperfeed.errors import ClientFault, NonRetryableError, RetriesExhaustedError, RunCancelled
from paperfeed.publishers import (
    EmailPublisher,
    LatestDigest,
    StdoutPublisher,
    WebPublisher,
    build_publishers,
    email_subject,
)
from paperfeed.render import render_html, render_text
from paperfeed.retry import CancelToken, RetryPolicy

FAST = RetryPolicy(max_retries=2, base_delay=0.001)


# ── Fixtures ───────────────────────────────────────────────────────────────────


def make_settings(**overrides):
    """Return a minimal Settings-like object for testing."""
    settings = MagicMock()
    settings.publishers = ["stdout"]
    settings.retry_policy = FAST
    settings.smtp_host = "smtp.example.com"
    settings.smtp_port = 587
    settings.smtp_username = "user"
    settings.smtp_password = "secret"
    settings.email_from = "digest@example.com"
    settings.email_to = ["a@example.com", "b@example.com"]
    settings.discord_webhook_url = "https://discord.com/api/webhooks/1/token"
    for k, v in overrides.items():
        setattr(settings, k, v)
    return settings


def make_email_publisher(smtp_factory) -> EmailPublisher:
    return EmailPublisher(
        host="smtp.example.com",
        port=587,
        username="user",
        password="secret",
        sender="digest@example.com",
        recipients=["a@example.com"],
        policy=FAST,
        smtp_factory=smtp_factory,
    )


# ── Rendering ──────────────────────────────────────────────────────────────────


class TestRender:
    def test_text_contains_digest_parts(self, sample_digest):
        text = render_text(sample_digest)
        assert "Daily Feed Digest: machine learning" in text
        assert "Test overview." in text
        assert "1. Paper 1" in text
        assert "   - point A" in text

    def test_html_escapes_content(self, sample_digest):
        digest = sample_digest.model_copy(update={"overview": "<script>alert(1)</script>"})
        html = render_html(digest)
        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html
        assert 'href="https://arxiv.org/abs/2503.00001"' in html

    def test_html_placeholder_without_digest(self):
        assert "No digest available yet" in render_html(None)


# ── Stdout ─────────────────────────────────────────────────────────────────────


class TestStdoutPublisher:
    def test_writes_text_digest(self, sample_digest):
        stream = io.StringIO()
        StdoutPublisher(stream).publish(sample_digest)
        assert stream.getvalue() == render_text(sample_digest) + "\n"


# ── Email ──────────────────────────────────────────────────────────────────────


class TestEmailPublisher:
    def test_subject(self, sample_digest):
        assert email_subject(sample_digest) == "Daily Feed: machine learning - 2025-03-01"

    def test_message_has_plain_and_html_parts(self, sample_digest):
        msg = make_email_publisher(MagicMock()).build_message(sample_digest)
        parts = [p.get_content_type() for p in msg.get_payload()]
        assert parts == ["text/plain", "text/html"]
        assert msg["To"] == "a@example.com"

    def test_sends_over_starttls(self, sample_digest):
        factory = MagicMock()
        server = factory.return_value.__enter__.return_value

        make_email_publisher(factory).publish(sample_digest)

        factory.assert_called_once_with("smtp.example.com", 587, timeout=30.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "secret")
        sender, recipients, body = server.sendmail.call_args.args
        assert (sender, recipients) == ("digest@example.com", ["a@example.com"])
        assert message_from_string(body)["Subject"].startswith("Daily Feed:")

    def test_auth_failure_is_not_retried(self, sample_digest):
        factory = MagicMock()
        server = factory.return_value.__enter__.return_value
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")

        with pytest.raises(NonRetryableError) as info:
            make_email_publisher(factory).publish(sample_digest)

        assert isinstance(info.value.cause, ClientFault)
        assert factory.call_count == 1

    def test_disconnect_is_retried(self, sample_digest):
        factory = MagicMock()
        server = factory.return_value.__enter__.return_value
        server.sendmail.side_effect = smtplib.SMTPServerDisconnected("gone")

        with pytest.raises(RetriesExhaustedError):
            make_email_publisher(factory).publish(sample_digest)

        assert factory.call_count == FAST.max_retries + 1

    def test_cancel_abandons_in_flight_send(self, sample_digest):
        token = CancelToken()
        release = threading.Event()
        factory = MagicMock()
        server = factory.return_value.__enter__.return_value

        def slow_sendmail(*args):
            token.cancel("shutdown")
            release.wait(10.0)

        server.sendmail.side_effect = slow_sendmail
        try:
            start = time.monotonic()
            with pytest.raises(RunCancelled, match="shutdown"):
                make_email_publisher(factory).publish(sample_digest, token)
            assert time.monotonic() - start < 1.0
        finally:
            release.set()


# ── Web ────────────────────────────────────────────────────────────────────────


class TestWebPublisher:
    def test_stores_latest_digest(self, sample_digest):
        store = LatestDigest()
        assert store.get() is None
        WebPublisher(store).publish(sample_digest)
        assert store.get() is sample_digest


# ── Factory ────────────────────────────────────────────────────────────────────


class TestBuildPublishers:
    def test_builds_in_configured_order(self):
        settings = make_settings(publishers=["discord", "stdout", "email", "web"])
        publishers = build_publishers(settings)
        assert [p.name for p in publishers] == ["discord", "stdout", "email", "web"]
        assert isinstance(publishers[0], DiscordPublisher)
        assert publishers[0].policy == FAST

    def test_web_publisher_shares_store(self):
        store = LatestDigest()
        (web,) = build_publishers(make_settings(publishers=["web"]), store)
        assert web.store is store

    def test_unknown_publisher_raises(self):
        with pytest.raises(ValueError, match="unsupported publisher type 'slack'"):
            build_publishers(make_settings(publishers=["slack"]))
