"""Output channels for a finished digest.

Every publisher exposes ``name`` and ``publish(digest, cancel)``. A publisher
raises on failure; the pipeline runner isolates failures per publisher.

- ``StdoutPublisher``  plain-text digest on a stream
- ``EmailPublisher``   HTML + plain-text email over SMTP (STARTTLS + login)
- ``WebPublisher``     hands the digest to ``LatestDigest`` for the web view
- ``DiscordPublisher`` batched webhook embeds (see ``paperfeed.discord``)
"""

from __future__ import annotations

import logging
import smtplib
import socket
import sys
import threading
from collections.abc import Sequence
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Callable, Optional, TextIO

from paperfeed.errors import ClientFault, TransportError
from paperfeed.models import Digest
from paperfeed.render import render_html, render_text
from paperfeed.retry import CancelToken, RetryPolicy, execute

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)


class Publisher:
    """Base class for output channels."""

    name = "publisher"

    def publish(self, digest: Digest, cancel: Optional[CancelToken] = None) -> None:
        raise NotImplementedError


# ── Stdout ─────────────────────────────────────────────────────────────────────


class StdoutPublisher(Publisher):
    name = "stdout"

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream

    def publish(self, digest: Digest, cancel: Optional[CancelToken] = None) -> None:
        stream = self.stream or sys.stdout
        stream.write(render_text(digest) + "\n")
        stream.flush()


# ── Email ──────────────────────────────────────────────────────────────────────


def email_subject(digest: Digest) -> str:
    return f"Daily Feed: {digest.topics_display} - {digest.generated_at:%Y-%m-%d}"


class EmailPublisher(Publisher):
    """Sends the digest to a fixed recipient list via authenticated SMTP."""

    name = "email"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        recipients: Sequence[str],
        policy: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.recipients = list(recipients)
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self.smtp_factory = smtp_factory

    def build_message(self, digest: Digest) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = email_subject(digest)
        msg["From"] = self.sender
        msg["To"] = ", ".join(self.recipients)
        # Plain part first; clients prefer the last alternative they support.
        msg.attach(MIMEText(render_text(digest), "plain", "utf-8"))
        msg.attach(MIMEText(render_html(digest), "html", "utf-8"))
        return msg

    def publish(self, digest: Digest, cancel: Optional[CancelToken] = None) -> None:
        msg = self.build_message(digest)
        execute(lambda c: self._send(msg, c), self.policy, cancel)
        logger.info("Email sent recipients=%d", len(self.recipients))

    def _send(self, msg: MIMEMultipart, cancel: CancelToken) -> None:
        try:
            cancel.call(self._deliver, msg)
        except (smtplib.SMTPAuthenticationError, smtplib.SMTPRecipientsRefused,
                smtplib.SMTPSenderRefused) as exc:
            raise ClientFault(f"email: rejected: {exc}") from exc
        except socket.timeout as exc:
            raise TransportError.timeout(f"email: timeout: {exc}") from exc
        except (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError, ConnectionError) as exc:
            raise TransportError.connection(f"email: connection failed: {exc}") from exc
        except smtplib.SMTPException as exc:
            raise TransportError(f"email: failed to send: {exc}") from exc

    def _deliver(self, msg: MIMEMultipart) -> None:
        with self.smtp_factory(self.host, self.port, timeout=self.timeout) as server:
            server.ehlo()
            server.starttls()
            server.ehlo()
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.sender, self.recipients, msg.as_string())


# ── Web ────────────────────────────────────────────────────────────────────────


class LatestDigest:
    """Thread-safe holder of the most recent digest, read by the web view."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._digest: Optional[Digest] = None

    def set(self, digest: Digest) -> None:
        with self._lock:
            self._digest = digest

    def get(self) -> Optional[Digest]:
        with self._lock:
            return self._digest


class WebPublisher(Publisher):
    name = "web"

    def __init__(self, store: LatestDigest) -> None:
        self.store = store

    def publish(self, digest: Digest, cancel: Optional[CancelToken] = None) -> None:
        self.store.set(digest)
        logger.info("Web view updated topics=%r", digest.topics_display)


# ── Factory ────────────────────────────────────────────────────────────────────


def build_publishers(settings: Settings, store: Optional[LatestDigest] = None) -> list[Publisher]:
    """Build the publishers named in ``settings.publishers``, in order.

    Args:
        settings: Validated application settings.
        store: Shared digest holder for the web publisher; created if needed.

    Raises:
        ValueError: If an unknown publisher name is configured.
    """
    from paperfeed.discord import DiscordPublisher

    policy = settings.retry_policy
    publishers: list[Publisher] = []
    for name in settings.publishers:
        if name == "stdout":
            publishers.append(StdoutPublisher())
        elif name == "email":
            publishers.append(EmailPublisher(
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username,
                password=settings.smtp_password,
                sender=settings.email_from,
                recipients=settings.email_to,
                policy=policy,
            ))
        elif name == "web":
            publishers.append(WebPublisher(store if store is not None else LatestDigest()))
        elif name == "discord":
            publishers.append(DiscordPublisher(settings.discord_webhook_url, policy=policy))
        else:
            raise ValueError(f"unsupported publisher type {name!r}")
    return publishers
