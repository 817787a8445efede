"""Paper ranking and summarisation using the Claude API.

One Messages API call per run: the prompt numbers every fetched paper, asks
the model to pick the ``top_n`` most relevant ones and answer with a JSON
digest. The raw text of the first content block goes to
``paperfeed.digest.assemble_digest``, which maps the model's 1-based indices
back onto the fetched list.

The Anthropic client is lazy-initialised so that the class can be
instantiated in tests without requiring a live API key. The SDK's own retries
are disabled; ``paperfeed.retry.execute`` owns the retry discipline.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Optional

import anthropic

from paperfeed.digest import assemble_digest
from paperfeed.errors import ContractViolation, TransportError
from paperfeed.models import Digest, Paper
from paperfeed.retry import CancelToken, RetryPolicy, execute

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
SUPPORTED_LANGUAGES = ("en", "ja")

#: Overview used when a run finds nothing to summarise.
NO_RESULTS_MESSAGES: dict[str, str] = {
    "en": "No papers found for the given topic.",
    "ja": "指定されたトピックの論文は見つかりませんでした。",
}

_LANGUAGE_INSTRUCTIONS: dict[str, str] = {
    "en": "Write the overview, summaries and key points in English.",
    "ja": "Write the overview, summaries and key points in Japanese.",
}


def no_results_overview(language: str) -> str:
    return NO_RESULTS_MESSAGES.get(language, NO_RESULTS_MESSAGES["en"])


def empty_digest(topics: Sequence[str], language: str) -> Digest:
    """Digest for a run whose fetch returned no papers."""
    return Digest(
        topics=tuple(topics),
        generated_at=datetime.now(timezone.utc),
        overview=no_results_overview(language),
    )


def build_prompt(
    papers: Sequence[Paper],
    topics: Sequence[str],
    top_n: int,
    language: str = "en",
) -> str:
    """Build the single user message sent to the model.

    Papers are numbered from 1 in list order; those numbers are the
    ``index`` values the model returns.
    """
    topic_text = ", ".join(topics)
    parts = [
        f'You are an expert research analyst. I have {len(papers)} recent papers '
        f'about "{topic_text}".\n'
    ]
    for i, paper in enumerate(papers, start=1):
        parts.append(
            f"--- Paper {i} ---\n"
            f"Title: {paper.title}\n"
            f"Authors: {', '.join(paper.authors)}\n"
            f"Category: {paper.category}\n"
            f"Abstract: {paper.abstract}\n"
        )

    parts.append(
        "Please analyze these papers and:\n"
        f'1. Rank them by importance and relevance to "{topic_text}"\n'
        f"2. Select the top {top_n} most important papers\n"
        "3. For each selected paper, provide a clear summary and 3-5 key points\n"
        "4. Write a brief overall digest overview\n"
        f"{_LANGUAGE_INSTRUCTIONS.get(language, _LANGUAGE_INSTRUCTIONS['en'])}\n\n"
        "Respond in JSON with this exact structure:\n"
        "{\n"
        '  "overview": "A 2-3 sentence overview of the most important trends and findings",\n'
        '  "summaries": [\n'
        "    {\n"
        '      "index": 1,\n'
        '      "summary": "2-3 sentence summary of the paper",\n'
        '      "key_points": ["point 1", "point 2", "point 3"]\n'
        "    }\n"
        "  ]\n"
        "}\n\n"
        'The "index" field should be the 1-based paper number from the list above.\n'
        "Respond ONLY with valid JSON, no markdown fences or additional text."
    )
    return "\n".join(parts)


class Summarizer:
    """Ranks and summarises fetched papers with one Claude call per run."""

    def __init__(
        self,
        api_key: str,
        topics: Sequence[str],
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        top_n: int = 5,
        language: str = "en",
        policy: Optional[RetryPolicy] = None,
        timeout: float = 120.0,
    ) -> None:
        """Initialise the summariser.

        Args:
            api_key: Anthropic API key.
            topics: Topics named in the prompt and stamped on the digest.
            model: Claude model identifier.
            max_tokens: Maximum output size of the call.
            top_n: How many papers the model should select.
            language: Output language code (``"en"`` or ``"ja"``).
            policy: Retry policy for the API call.
            timeout: Per-request timeout in seconds.
        """
        self.api_key = api_key
        self.topics = list(topics)
        self.model = model
        self.max_tokens = max_tokens
        self.top_n = top_n
        self.language = language
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self._client: object = None  # Lazy-initialised anthropic.Anthropic

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                max_retries=0,
                timeout=self.timeout,
            )
        return self._client

    def summarize(
        self,
        papers: Sequence[Paper],
        cancel: Optional[CancelToken] = None,
    ) -> Digest:
        """Rank *papers* and return the model's digest.

        Raises:
            NonRetryableError, RetriesExhaustedError, RunCancelled: From the
                retry executor around the API call.
            DigestParseError: The model's answer was not the expected JSON.
        """
        if not papers:
            return empty_digest(self.topics, self.language)

        prompt = build_prompt(papers, self.topics, self.top_n, self.language)
        logger.info(
            "Summarizing papers=%d model=%s top_n=%d",
            len(papers), self.model, self.top_n,
        )
        raw = execute(lambda c: self._call_api(prompt, c), self.policy, cancel)
        digest = assemble_digest(raw, papers, self.topics)
        logger.info("Digest assembled summaries=%d", len(digest.summaries))
        return digest

    def _call_api(self, prompt: str, cancel: CancelToken) -> str:
        """One cancellable Messages API round trip, with SDK errors tagged by kind."""
        try:
            response = cancel.call(
                self.client.messages.create,
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as exc:
            raise TransportError.timeout(f"anthropic: {exc}") from exc
        except anthropic.APIConnectionError as exc:
            raise TransportError.connection(f"anthropic: {exc}") from exc
        except anthropic.APIStatusError as exc:
            raise TransportError.http_status(
                exc.status_code, f"anthropic: {_error_detail(exc)}"
            ) from exc

        if not response.content:
            raise ContractViolation("anthropic: empty response")
        return getattr(response.content[0], "text", "") or ""


def _error_detail(exc: anthropic.APIStatusError) -> str:
    """``type - message`` from the API's error object when it has one."""
    body = exc.body if isinstance(exc.body, dict) else {}
    error = body.get("error") if isinstance(body.get("error"), dict) else {}
    if error:
        return f"{error.get('type', 'error')} - {error.get('message', '')}"
    return str(exc)
