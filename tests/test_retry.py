from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from leadgen.errors import ProviderError, RateLimitError
from leadgen.services.retry import BackoffPolicy, with_retry


def test_delay_grows_exponentially_and_is_capped():
    policy = BackoffPolicy(max_attempts=5, base_delay_ms=300, max_delay_ms=1000)

    with patch("leadgen.services.retry.random.random", return_value=0.5):
        delays = [policy.delay_seconds(n) for n in (1, 2, 3, 4)]

    assert delays == pytest.approx([0.3, 0.6, 1.0, 1.0])


def test_jitter_stays_within_twenty_percent():
    policy = BackoffPolicy(base_delay_ms=1000, max_delay_ms=1000)

    with patch("leadgen.services.retry.random.random", return_value=0.0):
        low = policy.delay_seconds(1)
    with patch("leadgen.services.retry.random.random", return_value=1.0):
        high = policy.delay_seconds(1)

    assert low == pytest.approx(0.8)
    assert high == pytest.approx(1.2)


@pytest.mark.asyncio
async def test_rate_limit_is_retried_until_success():
    fn = AsyncMock(side_effect=[RateLimitError("openai"), "ok"])

    with patch("leadgen.services.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await with_retry(fn, policy=BackoffPolicy(max_attempts=3))

    assert result == "ok"
    assert fn.await_count == 2
    sleep.assert_awaited_once()


@pytest.mark.asyncio
async def test_attempt_budget_is_respected():
    fn = AsyncMock(side_effect=RateLimitError("gemini"))

    with patch("leadgen.services.retry.asyncio.sleep", new=AsyncMock()):
        with pytest.raises(RateLimitError):
            await with_retry(fn, policy=BackoffPolicy(max_attempts=3))

    assert fn.await_count == 3


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    fn = AsyncMock(side_effect=ProviderError("deepseek", "HTTP 500", status_code=500))

    with pytest.raises(ProviderError):
        await with_retry(fn, policy=BackoffPolicy(max_attempts=3))

    assert fn.await_count == 1
