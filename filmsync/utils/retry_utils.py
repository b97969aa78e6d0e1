"""Classification of transient errors for record store operations.

Transient failures (network problems, rate limits, temporary server errors)
are worth retrying on a later sync cycle; permanent ones are not.
"""

from __future__ import annotations

import asyncio

import httpx

_TRANSIENT_KEYWORDS = (
    "timeout",
    "timed out",
    "connection",
    "network",
    "rate limit",
    "too many requests",
    "temporary",
    "unavailable",
    "bad gateway",
    "gateway timeout",
    "try again",
)

_TRANSIENT_TYPES = (
    "timeout",
    "connectionerror",
    "networkerror",
)


def is_transient_error(error: BaseException) -> bool:
    """Determine if an error is transient and worth retrying.

    Args:
        error: The exception to check

    Returns:
        True if the error appears to be transient, False otherwise
    """
    if isinstance(error, asyncio.CancelledError):
        return False
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, TimeoutError)):
        return True
    if isinstance(error, ConnectionError):
        return True

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int) and (status_code in (408, 429) or status_code >= 500):
        return True

    error_str = str(error).lower()
    if any(keyword in error_str for keyword in _TRANSIENT_KEYWORDS):
        return True

    exception_type = type(error).__name__.lower()
    return any(exc_type in exception_type for exc_type in _TRANSIENT_TYPES)
