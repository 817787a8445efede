"""Topic handling and multi-topic fan-in.

Responsibilities:
- ``TopicSet``: the one ordered topic abstraction used inside the pipeline
- Build arXiv search expressions for one topic or an OR across many
- Merge a combined result into one newest-first list of bounded length

When several topics are configured, ``TopicQueryMerger`` issues one combined
query instead of one query per topic. It asks for twice the configured bound
so that a topic with many recent papers does not crowd out the others, then
sorts locally and trims back to the bound.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

from paperfeed.models import Paper
from paperfeed.retry import CancelToken, RetryPolicy, execute

logger = logging.getLogger(__name__)

#: Over-fetch factor for combined multi-topic queries.
MULTI_TOPIC_FACTOR = 2


# ── TopicSet ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TopicSet:
    """Ordered topics for one run. Duplicates are allowed."""

    topics: tuple[str, ...] = ()

    @classmethod
    def of(cls, *topics: str) -> TopicSet:
        return cls(tuple(topics))

    @classmethod
    def from_config(
        cls,
        topic: Optional[str] = None,
        topics: Optional[Sequence[str]] = None,
    ) -> TopicSet:
        """Collapse the legacy scalar topic and the topic list into one set.

        A non-empty ``topics`` list wins; otherwise ``topic`` is used. Blank
        entries are dropped.

        Raises:
            ValueError: If no usable topic remains.
        """
        cleaned = [t.strip() for t in (topics or []) if t and t.strip()]
        if not cleaned and topic and topic.strip():
            cleaned = [topic.strip()]
        if not cleaned:
            raise ValueError("at least one topic is required")
        return cls(tuple(cleaned))

    def __iter__(self) -> Iterator[str]:
        return iter(self.topics)

    def __len__(self) -> int:
        return len(self.topics)

    def __str__(self) -> str:
        return ", ".join(self.topics)


# ── Query construction ─────────────────────────────────────────────────────────


def single_topic_query(topic: str) -> str:
    """Search expression for one topic across all arXiv fields."""
    return f"all:{topic}"


def combined_query(topics: Sequence[str]) -> str:
    """OR together one quoted phrase query per topic.

    Examples:
        >>> combined_query(["quantum computing", 'say "hi"'])
        'all:"quantum computing" OR all:"say hi"'
    """
    return " OR ".join(f'all:"{t.replace(chr(34), "")}"' for t in topics)


def merge_newest_first(papers: Sequence[Paper], bound: int) -> list[Paper]:
    """Sort *papers* by publication time, newest first, and keep *bound*."""
    ordered = sorted(papers, key=lambda p: p.published, reverse=True)
    return ordered[:bound]


# ── Merger ─────────────────────────────────────────────────────────────────────


class PaperSource(Protocol):
    """One network round trip to a publication index."""

    def search(self, query: str, max_results: int, cancel: CancelToken) -> list[Paper]:
        ...


class TopicQueryMerger:
    """Fetches papers for a ``TopicSet`` with a single retryable request.

    This is the pipeline's fetch collaborator: ``fetch(topics, bound, cancel)``.
    """

    def __init__(self, source: PaperSource, policy: RetryPolicy) -> None:
        self.source = source
        self.policy = policy

    def fetch(
        self,
        topics: Sequence[str],
        max_results: int,
        cancel: Optional[CancelToken] = None,
    ) -> list[Paper]:
        """Fetch up to *max_results* recent papers for *topics*.

        Args:
            topics: One or more topics; an empty sequence makes no request.
            max_results: Upper bound on the returned list.
            cancel: Run-scoped cancel token.

        Returns:
            Papers newest first for multi-topic queries; source order for a
            single topic.

        Raises:
            NonRetryableError, RetriesExhaustedError, RunCancelled: From the
                retry executor.
        """
        topics = list(topics)
        if not topics:
            logger.info("No topics given, skipping fetch")
            return []

        if len(topics) == 1:
            return self._fetch_single(topics[0], max_results, cancel)
        return self._fetch_combined(topics, max_results, cancel)

    def _fetch_single(
        self, topic: str, max_results: int, cancel: Optional[CancelToken]
    ) -> list[Paper]:
        query = single_topic_query(topic)
        logger.info("Fetching topic=%r max_results=%d", topic, max_results)
        return execute(
            lambda c: self.source.search(query, max_results, c),
            self.policy,
            cancel,
        )

    def _fetch_combined(
        self, topics: list[str], max_results: int, cancel: Optional[CancelToken]
    ) -> list[Paper]:
        query = combined_query(topics)
        requested = max_results * MULTI_TOPIC_FACTOR
        logger.info(
            "Fetching combined topics=%d requested=%d bound=%d",
            len(topics), requested, max_results,
        )

        # The whole fetch-and-merge is one retryable unit.
        def operation(c: CancelToken) -> list[Paper]:
            return merge_newest_first(self.source.search(query, requested, c), max_results)

        return execute(operation, self.policy, cancel)
