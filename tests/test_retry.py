from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from degen_research.errors import ProviderError, RetryExhaustedError
from degen_research.services.retry import is_rate_limit_error, retry_budget, with_backoff


class RateLimited(Exception):
    status_code = 429


def test_is_rate_limit_error_signatures():
    assert is_rate_limit_error(RateLimited("slow down"))
    assert is_rate_limit_error(Exception("Rate limit reached for requests"))
    assert is_rate_limit_error(Exception("HTTP 429: Too Many Requests"))

    coded = Exception("quota")
    coded.code = "rate_limit_exceeded"
    assert is_rate_limit_error(coded)

    wrapped = Exception("upstream")
    wrapped.response = SimpleNamespace(status_code=429)
    assert is_rate_limit_error(wrapped)

    assert not is_rate_limit_error(ValueError("bad request"))
    assert not is_rate_limit_error(Exception("internal server error"))


@pytest.mark.asyncio
async def test_non_rate_limit_error_propagates_without_retry():
    operation = AsyncMock(side_effect=ValueError("boom"))

    with patch("degen_research.services.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(ValueError, match="boom"):
            await with_backoff(operation, retries=5, base_delay_ms=10)

    assert operation.await_count == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_rate_limit_is_retried_until_success():
    operation = AsyncMock(side_effect=[RateLimited("429"), RateLimited("429"), "ok"])

    with patch("degen_research.services.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await with_backoff(operation, retries=5, base_delay_ms=1000)

    assert result == "ok"
    assert operation.await_count == 3
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhaustion_raises_terminal_error_after_exact_attempts():
    last = RateLimited("still throttled")
    operation = AsyncMock(side_effect=last)

    with patch("degen_research.services.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(RetryExhaustedError) as exc_info:
            await with_backoff(operation, retries=3, base_delay_ms=100, label="search.base")

    err = exc_info.value
    assert isinstance(err, ProviderError)
    assert err.attempts == 3
    assert err.last_error is last
    assert err.label == "search.base"
    assert operation.await_count == 3
    # No sleep after the final attempt.
    assert [c.args[0] for c in sleep.await_args_list] == [0.1, 0.2]


@pytest.mark.asyncio
@pytest.mark.parametrize("retries", [0, -1])
async def test_zero_retry_budget_raises_without_calling(retries):
    operation = AsyncMock(side_effect=RateLimited("429"))

    with patch("degen_research.services.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(RetryExhaustedError) as exc_info:
            await with_backoff(operation, retries=retries, label="search.risk")

    assert exc_info.value.attempts == 0
    assert exc_info.value.last_error is None
    operation.assert_not_awaited()
    sleep.assert_not_awaited()


def test_retry_budget_gives_essential_stages_more_attempts():
    assert retry_budget(True)["retries"] > retry_budget(False)["retries"]
