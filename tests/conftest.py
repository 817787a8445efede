"""Shared fixtures for the paperfeed test-suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from paperfeed.models import Digest, Paper, PaperSummary

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_paper(i: int, hours_ago: int = 0, **overrides) -> Paper:
    data = dict(
        title=f"Paper {i}",
        authors=[f"Author {i}A", f"Author {i}B"],
        abstract=f"Abstract for paper {i}.",
        url=f"https://arxiv.org/abs/2503.{i:05d}",
        published=BASE_TIME - timedelta(hours=hours_ago),
        category="cs.AI",
    )
    data.update(overrides)
    return Paper(**data)


@pytest.fixture(name="make_paper")
def make_paper_fixture():
    """Factory fixture: ``make_paper(i, hours_ago=0, **overrides)``."""
    return make_paper


@pytest.fixture
def papers() -> list[Paper]:
    return [make_paper(1), make_paper(2, hours_ago=1), make_paper(3, hours_ago=2)]


@pytest.fixture
def sample_digest(papers) -> Digest:
    return Digest(
        topics=["machine learning"],
        generated_at=BASE_TIME,
        overview="Test overview.",
        summaries=[
            PaperSummary(
                paper=papers[0],
                summary="Summary of paper one.",
                key_points=["point A", "point B"],
            ),
        ],
    )
