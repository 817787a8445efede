"""arXiv source: one Atom query per call, parsed into ``Paper`` objects.

The arXiv export API returns an Atom feed sorted by submission date when
asked. ``feedparser`` does the XML work; this module only pulls out the
fields the pipeline needs:

- title and abstract, trimmed
- author names in feed order
- the canonical link: the first ``alternate`` or ``text/html`` link,
  falling back to the first link of any kind
- the publication timestamp (UTC)
- the first category term as the primary category
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import feedparser
import requests

from paperfeed.errors import FeedParseError
from paperfeed.models import Paper
from paperfeed.retry import CancelToken
from paperfeed.transport import DEFAULT_TIMEOUT, new_session, send

logger = logging.getLogger(__name__)

ARXIV_API_URL = "https://export.arxiv.org/api/query"

#: Used when an entry has no parseable publication date.
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _parse_published(entry: dict) -> datetime:
    """Return the entry's publication time in UTC."""
    for field in ("published_parsed", "updated_parsed"):
        time_tuple = entry.get(field)
        if time_tuple:
            try:
                return datetime(*time_tuple[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    return _EPOCH


def _canonical_url(links: list[dict]) -> str:
    """First ``alternate`` link, else first ``text/html`` link, else first link."""
    for key, value in (("rel", "alternate"), ("type", "text/html")):
        for link in links:
            if link.get(key) == value:
                return link.get("href", "")
    if links:
        return links[0].get("href", "")
    return ""


def parse_feed(payload: str) -> list[Paper]:
    """Parse an arXiv Atom payload.

    Raises:
        FeedParseError: If the payload is not a readable feed. The raw
            payload is attached for diagnosis.
    """
    feed = feedparser.parse(payload.encode("utf-8"))
    if feed.bozo and not feed.entries:
        raise FeedParseError(
            f"arxiv: failed to parse feed: {feed.get('bozo_exception')}",
            raw=payload,
        )

    papers: list[Paper] = []
    for entry in feed.entries:
        authors = tuple(
            (a.get("name") or "").strip()
            for a in entry.get("authors", [])
        )
        tags = entry.get("tags") or []
        papers.append(Paper(
            title=(entry.get("title") or "").strip(),
            authors=authors,
            abstract=(entry.get("summary") or "").strip(),
            url=_canonical_url(entry.get("links") or []),
            published=_parse_published(entry),
            category=(tags[0].get("term") or "") if tags else "",
        ))
    return papers


class ArxivFetcher:
    """Runs search expressions against the arXiv export API.

    Each ``search`` call is exactly one HTTP request; retries and topic
    merging are layered on top by ``TopicQueryMerger``.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        base_url: str = ARXIV_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.session = session or new_session()
        self.base_url = base_url
        self.timeout = timeout

    def search(
        self,
        query: str,
        max_results: int,
        cancel: Optional[CancelToken] = None,
    ) -> list[Paper]:
        params = {
            "search_query": query,
            "start": 0,
            "max_results": max_results,
            "sortBy": "submittedDate",
            "sortOrder": "descending",
        }
        resp = send(
            self.session, "GET", self.base_url,
            cancel=cancel, timeout=self.timeout, params=params,
        )
        papers = parse_feed(resp.text)
        logger.info("arXiv query=%r returned %d entries", query, len(papers))
        return papers
