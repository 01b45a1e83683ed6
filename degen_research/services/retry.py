"""Rate-limit aware retry with exponential backoff."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from degen_research.config import settings
from degen_research.errors import RetryExhaustedError

T = TypeVar("T")

RATE_LIMIT_CODES = {"rate_limit_exceeded", "rate_limit_error", "too_many_requests"}
RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "too many requests")


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def is_rate_limit_error(exc: BaseException) -> bool:
    """True when the error looks like provider throttling (HTTP 429 and friends)."""
    if _status_code(exc) == 429:
        return True
    for attr in ("code", "type"):
        value = getattr(exc, attr, None)
        if isinstance(value, str) and value.lower() in RATE_LIMIT_CODES:
            return True
    message = str(exc).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


async def with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int | None = None,
    base_delay_ms: int | None = None,
    label: str = "",
) -> T:
    """Run ``operation``, retrying only rate-limit failures.

    Waits ``base_delay_ms * 2**attempt`` between attempts. Any other error is
    re-raised immediately. When every attempt was rate limited a
    ``RetryExhaustedError`` is raised instead of the provider's own error.
    ``operation`` is never invoked more than ``retries`` times, so a budget of
    zero raises without calling it.
    """
    attempts = max(int(settings.retry_max_attempts if retries is None else retries), 0)
    base_delay = settings.retry_base_delay_ms if base_delay_ms is None else base_delay_ms
    last_error: BaseException | None = None

    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as exc:
            if not is_rate_limit_error(exc):
                raise
            last_error = exc
            if attempt >= attempts - 1:
                break
            delay_ms = base_delay * (2**attempt)
            logger.warning(
                f"Rate limited in {label or 'operation'} "
                f"(attempt {attempt + 1}/{attempts}), retrying in {delay_ms}ms"
            )
            await asyncio.sleep(delay_ms / 1000)

    raise RetryExhaustedError(label, attempts, last_error)


def retry_budget(essential: bool) -> dict[str, Any]:
    """Retry kwargs for a search stage: full budget for essential stages only."""
    if essential:
        return {"retries": settings.retry_max_attempts}
    return {"retries": settings.search_nonessential_retries}
