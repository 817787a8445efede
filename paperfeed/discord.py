"""Discord webhook publisher.

The digest becomes one overview embed followed by one embed per paper.
Discord rejects messages with more than 10 embeds or more than 6000
characters across embed titles, descriptions, field names and values and
footers, so embeds are packed with ``bounded_batches`` and posted one batch
per request. A short pause between batches keeps the webhook under its rate
limit. The first batch that cannot be delivered fails the whole publish.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional

import requests
from pydantic import BaseModel, Field

from paperfeed.batching import bounded_batches, truncate
from paperfeed.errors import PaperFeedError, PublishError, RunCancelled
from paperfeed.models import Digest
from paperfeed.publishers import Publisher
from paperfeed.retry import CancelToken, RetryPolicy, execute
from paperfeed.transport import DEFAULT_TIMEOUT, new_session, send

logger = logging.getLogger(__name__)

MAX_EMBEDS_PER_MESSAGE = 10
MAX_CHARS_PER_MESSAGE = 6000
MAX_TITLE = 256
MAX_DESCRIPTION = 4096
MAX_FIELD_VALUE = 1024
MAX_FOOTER = 2048

BLURPLE = 0x5865F2


# ── Embed models ───────────────────────────────────────────────────────────────


class EmbedField(BaseModel):
    name: str
    value: str
    inline: Optional[bool] = None


class EmbedFooter(BaseModel):
    text: str


class Embed(BaseModel):
    """One Discord embed, serialised without its unset keys."""

    title: Optional[str] = None
    url: Optional[str] = None
    description: Optional[str] = None
    color: Optional[int] = None
    fields: list[EmbedField] = Field(default_factory=list)
    footer: Optional[EmbedFooter] = None
    timestamp: Optional[str] = None

    @property
    def weight(self) -> int:
        """Characters counted against the per-message limit."""
        n = len(self.title or "") + len(self.description or "")
        n += sum(len(f.name) + len(f.value) for f in self.fields)
        if self.footer is not None:
            n += len(self.footer.text)
        return n

    def to_payload(self) -> dict:
        data = self.model_dump(exclude_none=True)
        if not data.get("fields"):
            data.pop("fields", None)
        return data


# ── Embed construction ─────────────────────────────────────────────────────────


def format_key_points(points: Sequence[str]) -> str:
    return "\n".join(f"• {p}" for p in points)


def build_embeds(digest: Digest) -> list[Embed]:
    """Overview embed followed by one embed per summarised paper."""
    embeds = [
        Embed(
            title=truncate(f"Daily Feed: {digest.topics_display}", MAX_TITLE),
            description=truncate(digest.overview, MAX_DESCRIPTION),
            color=BLURPLE,
            footer=EmbedFooter(text=digest.generated_at.strftime("%Y-%m-%d")),
            timestamp=digest.generated_at.isoformat(),
        )
    ]

    for i, s in enumerate(digest.summaries, start=1):
        embed = Embed(
            title=truncate(f"{i}. {s.paper.title}", MAX_TITLE),
            url=s.paper.url or None,
            description=truncate(s.summary, MAX_DESCRIPTION),
            color=BLURPLE,
        )
        if s.key_points:
            embed.fields = [
                EmbedField(
                    name="Key Points",
                    value=truncate(format_key_points(s.key_points), MAX_FIELD_VALUE),
                )
            ]

        footer_parts = []
        if s.paper.authors:
            footer_parts.append(", ".join(s.paper.authors))
        if s.paper.category:
            footer_parts.append(s.paper.category)
        if footer_parts:
            embed.footer = EmbedFooter(text=truncate(" | ".join(footer_parts), MAX_FOOTER))

        embeds.append(embed)
    return embeds


def batch_embeds(embeds: list[Embed]) -> list[list[Embed]]:
    return bounded_batches(
        embeds,
        max_count=MAX_EMBEDS_PER_MESSAGE,
        max_weight=MAX_CHARS_PER_MESSAGE,
        weight=lambda e: e.weight,
    )


# ── Publisher ──────────────────────────────────────────────────────────────────


class DiscordPublisher(Publisher):
    """Posts the digest to a Discord channel through a webhook URL."""

    name = "discord"

    def __init__(
        self,
        webhook_url: str,
        session: Optional[requests.Session] = None,
        policy: Optional[RetryPolicy] = None,
        batch_delay: float = 0.5,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.webhook_url = webhook_url
        self.session = session or new_session()
        self.policy = policy or RetryPolicy()
        self.batch_delay = batch_delay
        self.timeout = timeout

    def publish(self, digest: Digest, cancel: Optional[CancelToken] = None) -> None:
        """Send every batch in order, stopping at the first failed batch.

        Raises:
            PublishError: A batch could not be delivered.
            RunCancelled: The token fired during a retry or inter-batch wait.
        """
        cancel = cancel or CancelToken()
        batches = batch_embeds(build_embeds(digest))
        logger.info("Discord publish batches=%d", len(batches))

        for i, batch in enumerate(batches, start=1):
            try:
                execute(lambda c: self._post(batch, c), self.policy, cancel)
            except RunCancelled:
                raise
            except PaperFeedError as exc:
                raise PublishError(f"discord: failed to send batch {i}: {exc}") from exc

            if i < len(batches):
                cancel.sleep(self.batch_delay)

    def _post(self, batch: list[Embed], cancel: CancelToken) -> None:
        payload = {"embeds": [e.to_payload() for e in batch]}
        send(
            self.session, "POST", self.webhook_url,
            cancel=cancel, timeout=self.timeout, json=payload,
        )
