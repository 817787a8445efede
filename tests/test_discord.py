"""Tests for paperfeed/discord.py"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from paperfeed.discord import (
    MAX_CHARS_PER_MESSAGE,
    MAX_EMBEDS_PER_MESSAGE,
    MAX_TITLE,
    DiscordPublisher,
    batch_embeds,
    build_embeds,
)
from paperfeed.errors import PublishError, RunCancelled
from paperfeed.models import Digest, PaperSummary
from paperfeed.retry import CancelToken, RetryPolicy

FAST = RetryPolicy(max_retries=1, base_delay=0.001)
WEBHOOK = "https://discord.com/api/webhooks/1/token"


def ok_response() -> MagicMock:
    resp = MagicMock()
    resp.status_code = 204
    return resp


def error_response(status: int) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = "nope"
    return resp


@pytest.fixture
def big_digest(make_paper, sample_digest) -> Digest:
    summaries = [
        PaperSummary(paper=make_paper(i), summary=f"Summary {i}.", key_points=["a", "b"])
        for i in range(1, 13)
    ]
    return sample_digest.model_copy(update={"summaries": summaries})


# ── Embeds ─────────────────────────────────────────────────────────────────────


class TestBuildEmbeds:
    def test_overview_then_one_per_paper(self, sample_digest):
        embeds = build_embeds(sample_digest)
        assert len(embeds) == 2
        overview, paper = embeds
        assert overview.title == "Daily Feed: machine learning"
        assert overview.description == "Test overview."
        assert overview.footer.text == "2025-03-01"
        assert overview.timestamp == sample_digest.generated_at.isoformat()

        assert paper.title == "1. Paper 1"
        assert paper.url == "https://arxiv.org/abs/2503.00001"
        assert paper.fields[0].name == "Key Points"
        assert paper.fields[0].value == "• point A\n• point B"
        assert paper.footer.text == "Author 1A, Author 1B | cs.AI"

    def test_long_title_truncated(self, make_paper, sample_digest):
        long = make_paper(1, title="word " * 100)
        digest = sample_digest.model_copy(update={
            "summaries": [PaperSummary(paper=long, summary="s")],
        })
        assert len(build_embeds(digest)[1].title) <= MAX_TITLE

    def test_payload_omits_unset_keys(self, sample_digest):
        payload = build_embeds(sample_digest)[0].to_payload()
        assert "url" not in payload
        assert "fields" not in payload
        assert payload["footer"] == {"text": "2025-03-01"}

    def test_batches_respect_limits(self, big_digest):
        batches = batch_embeds(build_embeds(big_digest))
        assert [len(b) for b in batches] == [10, 3]
        for batch in batches:
            assert len(batch) <= MAX_EMBEDS_PER_MESSAGE
            assert sum(e.weight for e in batch) <= MAX_CHARS_PER_MESSAGE


# ── Publisher ──────────────────────────────────────────────────────────────────


class TestDiscordPublisher:
    def test_posts_each_batch_in_order(self, big_digest):
        session = MagicMock()
        session.request.return_value = ok_response()
        DiscordPublisher(WEBHOOK, session=session, policy=FAST, batch_delay=0).publish(big_digest)

        assert session.request.call_count == 2
        first, second = session.request.call_args_list
        assert first.args == ("POST", WEBHOOK)
        assert len(first.kwargs["json"]["embeds"]) == 10
        assert len(second.kwargs["json"]["embeds"]) == 3
        assert second.kwargs["json"]["embeds"][-1]["title"] == "12. Paper 12"

    def test_retries_transient_batch_failure(self, sample_digest):
        session = MagicMock()
        session.request.side_effect = [error_response(502), ok_response()]
        DiscordPublisher(WEBHOOK, session=session, policy=FAST, batch_delay=0).publish(sample_digest)
        assert session.request.call_count == 2

    def test_first_failed_batch_stops_publish(self, big_digest):
        session = MagicMock()
        session.request.return_value = error_response(400)
        publisher = DiscordPublisher(WEBHOOK, session=session, policy=FAST, batch_delay=0)
        with pytest.raises(PublishError, match="failed to send batch 1"):
            publisher.publish(big_digest)
        assert session.request.call_count == 1

    def test_cancel_between_batches(self, big_digest):
        session = MagicMock()
        token = CancelToken()

        def respond(*args, **kwargs):
            token.cancel("shutdown")
            return ok_response()

        session.request.side_effect = respond
        publisher = DiscordPublisher(WEBHOOK, session=session, policy=FAST, batch_delay=10.0)
        with pytest.raises(RunCancelled, match="shutdown"):
            publisher.publish(big_digest, token)
        assert session.request.call_count == 1
