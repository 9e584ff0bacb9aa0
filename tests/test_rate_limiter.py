"""Tests for the API rate limiter."""

from unittest.mock import AsyncMock, patch

import pytest

from org_migrate.api.rate_limiter import RateLimiter


class TestRateLimiter:
    """Test token bucket behaviour."""

    def test_burst_within_budget(self):
        limiter = RateLimiter(requests_per_second=5)

        with patch('org_migrate.api.rate_limiter.time.sleep') as mock_sleep:
            for _ in range(4):
                limiter.acquire_sync()

        mock_sleep.assert_not_called()

    def test_sleeps_when_exhausted(self):
        limiter = RateLimiter(requests_per_second=2)
        limiter.tokens = 0

        with patch('org_migrate.api.rate_limiter.time.sleep') as mock_sleep:
            limiter.acquire_sync()

        mock_sleep.assert_called_once()
        assert 0 < mock_sleep.call_args.args[0] <= 0.5
        assert limiter.tokens == 0

    @pytest.mark.asyncio
    async def test_async_sleeps_when_exhausted(self):
        limiter = RateLimiter(requests_per_second=4)
        limiter.tokens = 0

        with patch(
            'org_migrate.api.rate_limiter.asyncio.sleep', new_callable=AsyncMock
        ) as mock_sleep:
            await limiter.acquire()

        mock_sleep.assert_awaited_once()
        assert 0 < mock_sleep.call_args.args[0] <= 0.25
