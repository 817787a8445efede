"""
Pydantic models shared across the paperfeed core.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class Paper(BaseModel):
    """A single publication discovered by the fetcher."""

    model_config = ConfigDict(frozen=True)

    title: str
    authors: tuple[str, ...] = ()
    abstract: str = ""
    url: str = ""
    published: datetime
    category: str = ""


class PaperSummary(BaseModel):
    """Model-written summary of one paper from the fetched list."""

    model_config = ConfigDict(frozen=True)

    paper: Paper
    summary: str
    key_points: tuple[str, ...] = ()


class Digest(BaseModel):
    """The output of one pipeline run: an overview plus ranked summaries."""

    model_config = ConfigDict(frozen=True)

    topics: tuple[str, ...]
    generated_at: datetime
    overview: str
    summaries: tuple[PaperSummary, ...] = ()

    @property
    def topics_display(self) -> str:
        """Comma-separated topic list used in titles and subjects."""
        return ", ".join(self.topics)
