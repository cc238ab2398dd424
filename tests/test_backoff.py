"""Tests for interval policy, error mapping and one-shot retries."""

import pytest

from pix_poller.engine import backoff
from pix_poller.engine.backoff import (
    GatewayError,
    PermanentError,
    RateLimitError,
    backoff_interval_ms,
    clamp_interval,
    error_for_status,
    interval_for_status,
    with_retry,
)


class TestBackoffInterval:
    def test_growth_from_pending_base(self):
        assert [backoff_interval_ms(5000, n, 1.5, 30000) for n in range(1, 7)] == [
            7500,
            11250,
            16875,
            25312,
            30000,
            30000,
        ]

    def test_no_failures_is_base(self):
        assert backoff_interval_ms(5000, 0, 1.5, 30000) == 5000

    def test_never_exceeds_ceiling(self):
        assert backoff_interval_ms(5000, 200, 1.5, 30000) == 30000


class TestIntervalForStatus:
    def test_processing_is_fast(self):
        assert interval_for_status("processing", 11250, 5000, 2000) == 2000

    def test_pending_is_medium(self):
        assert interval_for_status("pending", 2000, 5000, 2000) == 5000

    def test_other_status_keeps_current(self):
        assert interval_for_status("paid", 7500, 5000, 2000) == 7500

    def test_clamp(self):
        assert clamp_interval(500, 2000, 30000) == 2000
        assert clamp_interval(45000, 2000, 30000) == 30000
        assert clamp_interval(7500, 2000, 30000) == 7500


class TestErrorForStatus:
    def test_rate_limit_reads_retry_after(self):
        err = error_for_status(429, "slow down", retry_after="3")
        assert isinstance(err, RateLimitError)
        assert err.retry_after == 3.0

    def test_rate_limit_ignores_http_date_retry_after(self):
        err = error_for_status(429, "slow down", retry_after="Wed, 21 Oct 2026 07:28:00 GMT")
        assert err.retry_after is None

    def test_server_errors_are_retriable(self):
        for code in (500, 502, 503, 504, 408):
            err = error_for_status(code, "nope")
            assert err.retriable, code

    def test_client_errors_are_permanent(self):
        for code in (400, 401, 403, 404, 422):
            err = error_for_status(code, "nope")
            assert isinstance(err, PermanentError), code
            assert err.status_code == code


class TestWithRetry:
    @pytest.fixture(autouse=True)
    def fast_sleep(self, monkeypatch):
        monkeypatch.setattr(backoff, "BASE_DELAY", 0.001)
        monkeypatch.setattr(backoff, "MAX_DELAY", 0.005)

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise GatewayError("503", status_code=503)
            return "ok"

        assert await with_retry(flaky) == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_permanent_error_is_not_retried(self):
        attempts = []

        async def missing():
            attempts.append(1)
            raise PermanentError("not found", status_code=404)

        with pytest.raises(PermanentError):
            await with_retry(missing)
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        attempts = []

        async def down():
            attempts.append(1)
            raise RateLimitError(retry_after=1.0)

        with pytest.raises(RateLimitError):
            await with_retry(down, max_retries=2)
        assert len(attempts) == 3
