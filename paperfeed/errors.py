"""Exception hierarchy for the paperfeed pipeline.

Faults are tagged where they are produced (the HTTP, SDK and SMTP
boundaries) so the retry classifier never has to inspect message text.

Taxonomy
────────
TransportError     transient or HTTP-level fault, carries a ``FaultKind``
ClientFault        request rejected by the remote side, never retried
ContractViolation  upstream payload could not be understood, never retried
RunCancelled       the run's cancel token fired
PublishError       one publisher failed to deliver
PipelineError      fetch or summarize aborted the run
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FaultKind(str, Enum):
    """Category of a network fault, decided at the network boundary."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    HTTP_STATUS = "http_status"
    UNKNOWN = "unknown"


class PaperFeedError(Exception):
    """Base class for every error raised by paperfeed."""


class TransportError(PaperFeedError):
    """A network call failed before producing a usable response."""

    def __init__(
        self,
        message: str,
        kind: FaultKind = FaultKind.UNKNOWN,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @classmethod
    def timeout(cls, message: str) -> TransportError:
        return cls(message, FaultKind.TIMEOUT)

    @classmethod
    def connection(cls, message: str) -> TransportError:
        return cls(message, FaultKind.CONNECTION)

    @classmethod
    def http_status(cls, status_code: int, message: str = "") -> TransportError:
        text = f"unexpected status {status_code}"
        if message:
            text = f"{text}: {message}"
        return cls(text, FaultKind.HTTP_STATUS, status_code)


class ClientFault(PaperFeedError):
    """The remote side rejected the request; repeating it cannot help."""


class ContractViolation(PaperFeedError):
    """An upstream payload did not match its expected format.

    ``raw`` keeps the offending payload for diagnosis.
    """

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class FeedParseError(ContractViolation):
    """The source feed could not be parsed."""


class DigestParseError(ContractViolation):
    """The model's digest text was not the expected JSON object."""


class NonRetryableError(PaperFeedError):
    """Raised by the retry executor when a fault is not worth repeating."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"non-retryable error: {cause}")
        self.cause = cause


class RetriesExhaustedError(PaperFeedError):
    """Raised by the retry executor after the final allowed attempt."""

    def __init__(self, attempts: int, cause: BaseException) -> None:
        super().__init__(f"operation failed after {attempts} attempts: {cause}")
        self.attempts = attempts
        self.cause = cause


class RunCancelled(PaperFeedError):
    """The run was cancelled; ``reason`` is what the canceller supplied."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PublishError(PaperFeedError):
    """A publisher could not deliver the digest."""


class PipelineError(PaperFeedError):
    """A pipeline stage failed and the run was abandoned."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause


class AllPublishersFailedError(PaperFeedError):
    """Every configured publisher failed during one run."""

    def __init__(self, failures: dict[str, BaseException]) -> None:
        details = "; ".join(f"{name}: {exc}" for name, exc in failures.items())
        super().__init__(f"all publishers failed: {details}")
        self.failures = failures
