"""Retry with exponential backoff, shared by every outbound network call.

Usage:
    policy = RetryPolicy(max_retries=3, base_delay=1.0)
    papers = execute(lambda cancel: source.search(query, 20, cancel), policy, cancel)

An operation is called with the run's ``CancelToken`` and may be invoked
up to ``policy.max_retries + 1`` times. Between attempts the executor sleeps
``base_delay * 2**attempt`` plus a jitter drawn from ``[0, base_delay)``.
The sleep returns early when the token fires.

Blocking network calls go through ``CancelToken.call`` so that a cancel
abandons a request that is already in flight.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from paperfeed.errors import (
    ClientFault,
    ContractViolation,
    FaultKind,
    NonRetryableError,
    RetriesExhaustedError,
    RunCancelled,
    TransportError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

#: How often an in-flight call checks the token, in seconds.
POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how long to back off."""

    max_retries: int = 3
    #: Seconds; doubled after every failed attempt.
    base_delay: float = 1.0


class CancelToken:
    """Run-scoped cancellation signal backed by ``threading.Event``."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    def cancel(self, reason: str = "run cancelled") -> None:
        """Fire the token. The first reason given wins."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return True if cancelled in the meantime."""
        return self._event.wait(max(seconds, 0.0))

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled(self._reason)

    def sleep(self, seconds: float) -> None:
        """Cancellable sleep that raises ``RunCancelled`` if interrupted."""
        if self.wait(seconds):
            raise RunCancelled(self._reason)

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run the blocking *fn* on a worker thread until it returns or the token fires.

        If the token fires first, the call is abandoned. Its thread keeps
        running until the call's own timeout ends it, and its result is
        discarded.

        Raises:
            RunCancelled: The token fired before or during the call.
            Exception: Whatever *fn* raised.
        """
        self.raise_if_cancelled()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="paperfeed-call")
        try:
            future = executor.submit(fn, *args, **kwargs)
            while True:
                done, _ = wait([future], timeout=POLL_INTERVAL)
                if done:
                    return future.result()
                if self._event.is_set():
                    logger.info("Abandoning in-flight call reason=%s", self._reason)
                    raise RunCancelled(self._reason)
        finally:
            executor.shutdown(wait=False)


# ── Classification ─────────────────────────────────────────────────────────────


def is_retryable(exc: BaseException) -> bool:
    """Decide whether *exc* is worth another attempt.

    Timeouts, connection failures, HTTP 5xx and HTTP 429 are retryable.
    Other HTTP 4xx responses, client faults, contract violations and
    cancellation are not. Anything without a recognizable tag is treated
    as retryable.
    """
    if not isinstance(exc, Exception):
        return False
    if isinstance(exc, (ClientFault, ContractViolation, NonRetryableError, RunCancelled)):
        return False
    if not isinstance(exc, TransportError):
        return True

    if exc.kind in (FaultKind.TIMEOUT, FaultKind.CONNECTION):
        return True
    if exc.kind == FaultKind.HTTP_STATUS and exc.status_code is not None:
        if exc.status_code == 429 or exc.status_code >= 500:
            return True
        if 400 <= exc.status_code < 500:
            return False
    # Unrecognized faults fail open.
    return True


def backoff_wait(policy: RetryPolicy):
    """tenacity wait strategy: ``base * 2**(attempt - 1)`` plus ``[0, base)`` jitter."""
    return wait_exponential(multiplier=policy.base_delay) + wait_random(0, policy.base_delay)


# ── Executor ───────────────────────────────────────────────────────────────────


def execute(
    operation: Callable[[CancelToken], T],
    policy: RetryPolicy,
    cancel: Optional[CancelToken] = None,
) -> T:
    """Run *operation* with retries according to *policy*.

    Args:
        operation: Callable taking the cancel token and returning a value.
        policy: Retry count and base delay.
        cancel: Run-scoped cancel token. A fresh one is used when omitted.

    Returns:
        Whatever the first successful call returned.

    Raises:
        NonRetryableError: The operation failed with a non-retryable fault.
        RetriesExhaustedError: Every allowed attempt failed.
        RunCancelled: The token fired during a backoff wait, or the
            operation itself observed cancellation.
    """
    cancel = cancel or CancelToken()
    attempts = max(policy.max_retries, 0) + 1

    def log_retry(state: RetryCallState) -> None:
        logger.info(
            "Retrying after failure attempt=%d/%d delay=%.2fs error=%s",
            state.attempt_number, attempts, state.next_action.sleep,
            state.outcome.exception(),
        )

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=backoff_wait(policy),
        retry=retry_if_exception(is_retryable),
        sleep=cancel.sleep,
        before_sleep=log_retry,
        reraise=True,
    )

    try:
        return retrying(operation, cancel)
    except RunCancelled:
        raise
    except Exception as exc:
        if not is_retryable(exc):
            raise NonRetryableError(exc) from exc
        raise RetriesExhaustedError(attempts, exc) from exc
