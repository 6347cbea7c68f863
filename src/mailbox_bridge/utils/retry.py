"""Rate-limit detection and a bounded, fixed-delay retry policy.

Gmail signals per-user quota problems in two ways:

- HTTP 429 Too Many Requests
- HTTP 403 with a quota reason such as ``userRateLimitExceeded``

Provider quota windows reset on a fixed cadence, so the retry policy waits
a constant delay between attempts instead of backing off exponentially.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import structlog

from mailbox_bridge.exceptions import RateLimitedError, StandardizedError

logger = structlog.get_logger()

T = TypeVar("T")

RATE_LIMIT_REASONS: frozenset[str] = frozenset(
    {
        "userRateLimitExceeded",
        "rateLimitExceeded",
        "quotaExceeded",
        "dailyLimitExceeded",
        "backendError",
        "limitExceeded",
    }
)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_DELAY = 60.0


def _status_of(error: BaseException) -> int | None:
    for candidate in (
        getattr(error, "status", None),
        getattr(error, "status_code", None),
        getattr(error, "code", None),
        getattr(getattr(error, "resp", None), "status", None),
        getattr(getattr(error, "response", None), "status_code", None),
        getattr(getattr(error, "response", None), "status", None),
    ):
        if candidate is None or isinstance(candidate, bool):
            continue
        try:
            return int(candidate)
        except (TypeError, ValueError):
            continue
    return None


def _reasons_of(error: BaseException) -> Iterable[str]:
    for attr in ("errors", "error_details"):
        details = getattr(error, attr, None)
        if isinstance(details, list):
            for item in details:
                if isinstance(item, dict) and item.get("reason"):
                    yield str(item["reason"])

    content = getattr(error, "content", None)
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    if isinstance(content, str) and content:
        try:
            body = json.loads(content)
        except ValueError:
            return
        inner = body.get("error") if isinstance(body, dict) else None
        if isinstance(inner, dict):
            for item in inner.get("errors") or []:
                if isinstance(item, dict) and item.get("reason"):
                    yield str(item["reason"])


def is_rate_limit(error: BaseException | None) -> bool:
    """Return True if ``error`` is a provider throttling signal.

    Errors already wrapped by the driver error envelope are unwrapped via
    ``original_error`` before classification.
    """

    if error is None:
        return False
    if isinstance(error, RateLimitedError):
        return True
    if isinstance(error, StandardizedError) and error.original_error is not None:
        return is_rate_limit(error.original_error)

    status = _status_of(error)
    if status == 429:
        return True
    if status == 403:
        return any(reason in RATE_LIMIT_REASONS for reason in _reasons_of(error))
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay: float = DEFAULT_DELAY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    name: str | None = None,
) -> T:
    """Run ``operation``, retrying only while it fails with a rate limit.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        max_attempts: Total number of attempts, including the first one.
        delay: Seconds to wait between rate-limited attempts.
        sleep: Awaitable sleep function (injectable for tests).
        name: Operation name used in log events.

    Returns:
        The operation's result.

    Raises:
        The last error once attempts are exhausted, or any non rate-limit
        error immediately.
    """

    label = name or getattr(operation, "__name__", "operation")
    attempts = max(1, max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if not is_rate_limit(exc):
                raise
            if attempt >= attempts:
                logger.error(
                    "rate_limit_retry_exhausted",
                    operation=label,
                    attempts=attempt,
                    error=str(exc),
                )
                raise
            logger.warning(
                "rate_limit_retry",
                operation=label,
                attempt=attempt,
                max_attempts=attempts,
                delay=delay,
                error=str(exc),
            )
            await sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover

