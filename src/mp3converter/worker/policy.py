"""Failure classification and the retry/dead-letter decision table."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..exceptions import FailureReason, PipelineError

PERMANENT_REASONS = frozenset(
    {
        FailureReason.MALFORMED_MESSAGE,
        FailureReason.INVALID_IDENTIFIER,
        FailureReason.NOT_FOUND,
    }
)

# Matched case-sensitively against the text of every failure.
PERMANENT_MARKERS = ("not found", "Invalid file ID")


class Disposition(str, Enum):
    ACK = "ack"
    REQUEUE = "requeue"
    DEAD_LETTER = "dead-letter"


def failure_reason(exc: BaseException) -> FailureReason:
    if isinstance(exc, PipelineError):
        return exc.reason
    return FailureReason.UNKNOWN


def is_permanent(exc: BaseException) -> bool:
    """Return True when redelivering the message cannot succeed.

    A permanent structured reason decides outright. Every other error,
    converter failures included, is still checked for the permanent markers
    in its message text, so ffmpeg output such as "Unknown encoder ... not
    found" is dead-lettered rather than retried.
    """

    if failure_reason(exc) in PERMANENT_REASONS:
        return True
    message = str(exc)
    return any(marker in message for marker in PERMANENT_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3

    def decide(self, exc: BaseException, retry_count: int) -> Disposition:
        if is_permanent(exc):
            return Disposition.DEAD_LETTER
        if retry_count >= self.max_retries:
            return Disposition.DEAD_LETTER
        return Disposition.REQUEUE


__all__ = [
    "Disposition",
    "PERMANENT_MARKERS",
    "PERMANENT_REASONS",
    "RetryPolicy",
    "failure_reason",
    "is_permanent",
]
