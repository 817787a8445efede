"""Pipeline orchestration: fetch → summarize → publish.

States
──────
IDLE → FETCHING → SUMMARIZING → PUBLISHING → DONE | FAILED

- A fetch or summarize failure ends the run in FAILED and propagates.
- An empty fetch skips the summarizer and produces a "no results" digest.
- Publishers run one at a time. A failing publisher is logged and skipped;
  the run only fails when every configured publisher failed.

``PipelineRun`` is single-use. ``Pipeline.run`` starts a fresh one each
time, so a scheduler can call it repeatedly. Overlapping calls are not
serialised.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from paperfeed.errors import AllPublishersFailedError, PipelineError, RunCancelled
from paperfeed.models import Digest, Paper
from paperfeed.publishers import Publisher
from paperfeed.retry import CancelToken
from paperfeed.summarizer import empty_digest

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUMMARIZING = "summarizing"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


class Fetcher(Protocol):
    def fetch(
        self, topics: Sequence[str], max_results: int, cancel: Optional[CancelToken] = None
    ) -> list[Paper]:
        ...


class DigestSummarizer(Protocol):
    def summarize(
        self, papers: Sequence[Paper], cancel: Optional[CancelToken] = None
    ) -> Digest:
        ...


@dataclass
class RunReport:
    """Outcome of one completed run."""

    state: RunState
    digest: Optional[Digest] = None
    publish_failures: dict[str, BaseException] = field(default_factory=dict)


class PipelineRun:
    """State machine for exactly one pipeline run."""

    def __init__(
        self,
        topics: Sequence[str],
        max_results: int,
        fetcher: Fetcher,
        summarizer: DigestSummarizer,
        publishers: Sequence[Publisher],
        language: str = "en",
    ) -> None:
        self.topics = list(topics)
        self.max_results = max_results
        self.fetcher = fetcher
        self.summarizer = summarizer
        self.publishers = list(publishers)
        self.language = language
        self.state = RunState.IDLE

    def _enter(self, state: RunState) -> None:
        logger.debug("Run state %s -> %s", self.state.value, state.value)
        self.state = state

    def execute(self, cancel: Optional[CancelToken] = None) -> RunReport:
        """Run the pipeline once.

        Returns:
            A ``RunReport`` in state DONE. Publisher failures that did not
            fail the run are listed in ``publish_failures``.

        Raises:
            RuntimeError: This run instance was already used.
            PipelineError: Fetch or summarize failed.
            AllPublishersFailedError: No publisher succeeded.
            RunCancelled: The cancel token fired.
        """
        if self.state != RunState.IDLE:
            raise RuntimeError(f"pipeline run already {self.state.value}; start a new run")
        cancel = cancel or CancelToken()

        logger.info(
            "Starting pipeline topics=%r max_results=%d",
            ", ".join(self.topics), self.max_results,
        )
        try:
            papers = self._fetch(cancel)
            digest = self._summarize(papers, cancel)
            failures = self._publish(digest, cancel)
        except Exception:
            self._enter(RunState.FAILED)
            raise

        self._enter(RunState.DONE)
        return RunReport(state=self.state, digest=digest, publish_failures=failures)

    def _fetch(self, cancel: CancelToken) -> list[Paper]:
        self._enter(RunState.FETCHING)
        try:
            papers = self.fetcher.fetch(self.topics, self.max_results, cancel)
        except RunCancelled:
            raise
        except Exception as exc:
            raise PipelineError("fetch", exc) from exc
        logger.info("Fetched papers count=%d", len(papers))
        return papers

    def _summarize(self, papers: list[Paper], cancel: CancelToken) -> Digest:
        self._enter(RunState.SUMMARIZING)
        if not papers:
            logger.info("No papers fetched, skipping summarization")
            return empty_digest(self.topics, self.language)
        try:
            digest = self.summarizer.summarize(papers, cancel)
        except RunCancelled:
            raise
        except Exception as exc:
            raise PipelineError("summarize", exc) from exc
        logger.info("Generated digest summaries=%d", len(digest.summaries))
        return digest

    def _publish(self, digest: Digest, cancel: CancelToken) -> dict[str, BaseException]:
        self._enter(RunState.PUBLISHING)
        failures: dict[str, BaseException] = {}

        for index, publisher in enumerate(self.publishers):
            label = publisher.name
            if label in failures:
                label = f"{label}#{index}"
            logger.info("Publishing via %s", label)
            try:
                publisher.publish(digest, cancel)
            except RunCancelled:
                raise
            except Exception as exc:
                failures[label] = exc
                logger.warning("Publish via %s failed: %s", label, exc)
            else:
                logger.info("Published via %s", label)

        if self.publishers and len(failures) == len(self.publishers):
            raise AllPublishersFailedError(failures)
        if failures:
            logger.warning(
                "Pipeline completed with %d publisher failures out of %d",
                len(failures), len(self.publishers),
            )
        else:
            logger.info("Pipeline completed successfully")
        return failures


class Pipeline:
    """Holds the run configuration and starts a fresh ``PipelineRun`` per call."""

    def __init__(
        self,
        topics: Sequence[str],
        max_results: int,
        fetcher: Fetcher,
        summarizer: DigestSummarizer,
        publishers: Sequence[Publisher],
        language: str = "en",
    ) -> None:
        self.topics = list(topics)
        self.max_results = max_results
        self.fetcher = fetcher
        self.summarizer = summarizer
        self.publishers = list(publishers)
        self.language = language

    def new_run(self) -> PipelineRun:
        return PipelineRun(
            self.topics,
            self.max_results,
            self.fetcher,
            self.summarizer,
            self.publishers,
            language=self.language,
        )

    def run(self, cancel: Optional[CancelToken] = None) -> RunReport:
        return self.new_run().execute(cancel)
