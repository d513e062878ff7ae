"""Retry classification for errors raised while polling a zone.

Only backend conflict (409) and rate-limit (429) responses are treated as
transient. Everything else, including malformed requests, authorization
failures and connection errors without an HTTP status, fails the poll.
The classifier is consulted only between poll ticks; initial create, update
and delete calls fail immediately on any error.
"""

from __future__ import annotations

import logging
from enum import Enum

from azure.core.exceptions import HttpResponseError

from .config import Phase

logger = logging.getLogger(__name__)

HTTP_CONFLICT = 409
HTTP_TOO_MANY_REQUESTS = 429

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({HTTP_CONFLICT, HTTP_TOO_MANY_REQUESTS})


class RetryDecision(str, Enum):
    """Outcome of classifying a poll error."""

    RETRY = "retry"
    FAIL = "fail"


def status_code_of(error: BaseException) -> int | None:
    """Extract the HTTP status code carried by an azure-core error, if any."""
    if isinstance(error, HttpResponseError):
        return error.status_code
    return None


def classify(error: BaseException, phase: Phase) -> RetryDecision:
    """Decide whether a poll read error is worth retrying.

    Args:
        error: Exception raised by the zone client's read call.
        phase: Lifecycle phase that was polling when the error occurred.

    Returns:
        RetryDecision.RETRY for conflict/rate-limit responses, FAIL otherwise.
    """
    status_code = status_code_of(error)
    decision = (
        RetryDecision.RETRY if status_code in RETRYABLE_STATUS_CODES else RetryDecision.FAIL
    )

    logger.debug(
        "Classified poll error",
        extra={
            "phase": phase.value,
            "status_code": status_code,
            "error_type": type(error).__name__,
            "decision": decision.value,
        },
    )
    return decision
