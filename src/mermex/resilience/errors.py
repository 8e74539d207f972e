"""Error classification for render retries.

Classifies exceptions by category to enable:
- Structured logging (which failures are transient vs permanent)
- Retry decisions (only retry transient/server/timeout)
"""

from __future__ import annotations

import asyncio
from enum import Enum

import httpx
from circuitbreaker import CircuitBreakerError


class ErrorClass(Enum):
    TRANSIENT = "transient"  # 429, connection drops, resource busy; retryable
    SERVER = "server"  # 500, 502, 503; retryable
    TIMEOUT = "timeout"  # render deadline exceeded; retryable with backoff
    CLIENT = "client"  # 400, 401, 403, 404; do NOT retry
    PERMANENT = "permanent"  # grammar errors, open circuit; do NOT retry
    UNKNOWN = "unknown"  # unclassified; do NOT retry


# Problems with the diagram text itself, not with the backend
_GRAMMAR_MARKERS = (
    "parse error",
    "syntax error",
    "lexical error",
)

_PERMANENT_MARKERS = (*_GRAMMAR_MARKERS, "not found on path")

_TRANSIENT_MARKERS = (
    "rate limit",
    "too many requests",
    "resource unavailable",
    "temporarily unavailable",
    "temporary",
    "econnrefused",
    "connection",
    "network",
)


def classify_error(error: BaseException) -> ErrorClass:
    """Classify an error to determine handling strategy.

    Checks structured attributes first (status_code), then exception
    types, and falls back to string matching for untyped exceptions.
    """
    # 1. Open circuit is never worth retrying immediately
    if isinstance(error, CircuitBreakerError):
        return ErrorClass.PERMANENT

    # 2. Structured status_code attribute (RenderFailure, httpx)
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        if status_code == 429:
            return ErrorClass.TRANSIENT
        if 400 <= status_code < 500:
            return ErrorClass.CLIENT
        if 500 <= status_code < 600:
            return ErrorClass.SERVER

    # 3. Exception types
    if isinstance(
        error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)
    ):
        return ErrorClass.TIMEOUT
    if isinstance(error, httpx.TransportError):
        return ErrorClass.TRANSIENT

    # 4. String matching
    msg = str(error).lower()

    if any(marker in msg for marker in _PERMANENT_MARKERS):
        return ErrorClass.PERMANENT
    if "timeout" in msg or "timed out" in msg:
        return ErrorClass.TIMEOUT
    if "429" in msg or any(m in msg for m in _TRANSIENT_MARKERS):
        return ErrorClass.TRANSIENT
    if any(code in msg for code in ("500", "502", "503", "504")):
        return ErrorClass.SERVER

    return ErrorClass.UNKNOWN


_RETRYABLE = frozenset({
    ErrorClass.TRANSIENT,
    ErrorClass.SERVER,
    ErrorClass.TIMEOUT,
})


def is_retryable(error: BaseException) -> bool:
    """Return True if the error category supports retry."""
    return classify_error(error) in _RETRYABLE


def is_grammar_error(error: BaseException) -> bool:
    """Return True if the backend rejected the diagram text itself.

    These say nothing about backend health, so circuit breakers do not
    count them.
    """
    msg = str(error).lower()
    return any(marker in msg for marker in _GRAMMAR_MARKERS)
