#!/usr/bin/env python3
"""paperfeed: daily research digest of recent arXiv papers.

Fetches recent papers for the configured topics, asks Claude to rank and
summarise the most relevant ones, and publishes the digest to every
configured channel. Each invocation performs one run; use cron or another
scheduler for recurring digests.

Examples:
    python main.py                 # one run, publishers from PUBLISHERS
    python main.py --serve         # one run, then serve it on PORT

Environment:
    ANTHROPIC_API_KEY and TOPICS (or TOPIC) are required.
    See config/settings.py for all configuration options.

SIGINT or SIGTERM during the run cancels it; the process exits with 130.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import Optional

from dotenv import load_dotenv

from config.settings import Settings
from paperfeed.errors import PaperFeedError, RunCancelled
from paperfeed.fetcher import ArxivFetcher
from paperfeed.publishers import LatestDigest, build_publishers
from paperfeed.retry import CancelToken
from paperfeed.runner import Pipeline
from paperfeed.summarizer import Summarizer
from paperfeed.topics import TopicQueryMerger

logger = logging.getLogger(__name__)

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_stop_handlers(cancel: CancelToken) -> dict:
    """Fire *cancel* on SIGINT/SIGTERM. Returns the handlers it replaced."""

    def on_signal(signum, _frame):
        name = signal.Signals(signum).name
        logger.warning("Received %s, cancelling run", name)
        cancel.cancel(f"received {name}")

    return {sig: signal.signal(sig, on_signal) for sig in STOP_SIGNALS}


def restore_handlers(previous: dict) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def build_pipeline(settings: Settings, store: Optional[LatestDigest] = None) -> Pipeline:
    """Wire fetcher, summarizer and publishers from validated *settings*."""
    topics = list(settings.topic_set)
    policy = settings.retry_policy
    return Pipeline(
        topics=topics,
        max_results=settings.max_results,
        fetcher=TopicQueryMerger(ArxivFetcher(), policy),
        summarizer=Summarizer(
            api_key=settings.anthropic_api_key,
            topics=topics,
            model=settings.summary_model,
            max_tokens=settings.max_tokens,
            top_n=settings.top_n,
            language=settings.language,
            policy=policy,
        ),
        publishers=build_publishers(settings, store),
        language=settings.language,
    )


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Daily digest of recent arXiv papers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="after the run, serve the digest over HTTP (enables the web publisher)",
    )
    args = parser.parse_args(argv)

    load_dotenv()
    settings = Settings()
    if args.serve and "web" not in settings.publishers:
        settings.publishers.append("web")

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings.validate()
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    store = LatestDigest()
    pipeline = build_pipeline(settings, store)
    cancel = CancelToken()

    exit_code = 0
    previous = install_stop_handlers(cancel)
    try:
        report = pipeline.run(cancel)
        logger.info(
            "Run finished state=%s summaries=%d publisher_failures=%d",
            report.state.value, len(report.digest.summaries), len(report.publish_failures),
        )
    except RunCancelled as exc:
        logger.warning("Run cancelled: %s", exc.reason)
        return 130
    except PaperFeedError as exc:
        logger.error("Pipeline failed: %s", exc)
        exit_code = 1
    finally:
        restore_handlers(previous)

    if args.serve:
        from web.app import create_app

        logger.info("Serving digest on port %d", settings.port)
        create_app(store).run(debug=settings.debug, host="0.0.0.0", port=settings.port)

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
