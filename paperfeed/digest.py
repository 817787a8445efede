"""Turns the model's digest text into a ``Digest``.

The model is asked for JSON of this shape::

    {
      "overview": "...",
      "summaries": [
        {"index": 1, "summary": "...", "key_points": ["...", "..."]}
      ]
    }

``index`` is the 1-based position of the paper in the prompt. Entries whose
index falls outside the fetched list are dropped without error.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from paperfeed.errors import DigestParseError
from paperfeed.models import Digest, Paper, PaperSummary

logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^```[\w-]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```$")


class _SummaryPayload(BaseModel):
    """One ``summaries`` entry. Missing or null keys read as zero values;
    index 0 is then dropped as out of range."""

    index: int = 0
    summary: str = ""
    key_points: list[str] = Field(default_factory=list)

    @field_validator("index", mode="before")
    @classmethod
    def null_index(cls, value):
        return 0 if value is None else value

    @field_validator("summary", mode="before")
    @classmethod
    def null_summary(cls, value):
        return "" if value is None else value

    @field_validator("key_points", mode="before")
    @classmethod
    def null_key_points(cls, value):
        return [] if value is None else value


class _DigestPayload(BaseModel):
    overview: str = ""
    summaries: list[_SummaryPayload] = Field(default_factory=list)

    @field_validator("overview", mode="before")
    @classmethod
    def null_overview(cls, value):
        return "" if value is None else value

    @field_validator("summaries", mode="before")
    @classmethod
    def null_summaries(cls, value):
        return [] if value is None else value


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence and outer whitespace.

    Examples:
        >>> strip_code_fences('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
    """
    text = text.strip()
    text = _LEADING_FENCE.sub("", text, count=1)
    text = _TRAILING_FENCE.sub("", text, count=1)
    return text.strip()


def assemble_digest(
    raw: str,
    papers: Sequence[Paper],
    topics: Sequence[str],
    generated_at: Optional[datetime] = None,
) -> Digest:
    """Parse *raw* model output and resolve its indices against *papers*.

    Args:
        raw: Text of the first content block returned by the model.
        papers: The list that was numbered in the prompt.
        topics: Topics the digest is for.
        generated_at: Timestamp to stamp on the digest; defaults to now (UTC).

    Returns:
        A ``Digest`` with one summary per in-range index, in model order.

    Raises:
        DigestParseError: If the text is not a JSON object of the expected
            shape. The original text is included in the message.
    """
    cleaned = strip_code_fences(raw)
    try:
        payload = _DigestPayload.model_validate(json.loads(cleaned))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise DigestParseError(
            f"failed to parse LLM JSON: {exc}\nraw response: {raw}",
            raw=raw,
        ) from exc

    summaries: list[PaperSummary] = []
    for entry in payload.summaries:
        position = entry.index - 1
        if position < 0 or position >= len(papers):
            logger.debug("Dropping summary with out-of-range index=%d", entry.index)
            continue
        summaries.append(PaperSummary(
            paper=papers[position].model_copy(),
            summary=entry.summary,
            key_points=tuple(entry.key_points),
        ))

    return Digest(
        topics=tuple(topics),
        generated_at=generated_at or datetime.now(timezone.utc),
        overview=payload.overview,
        summaries=tuple(summaries),
    )
