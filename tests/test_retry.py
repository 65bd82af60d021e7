"""
Tests for retry logic used by source adapters.
"""

import pytest
from unittest.mock import Mock, patch

from ghostjobs.retry import RetryError, exponential_backoff, should_retry_http_status
from ghostjobs.sources.common import fetch_with_error_handling


@pytest.fixture
def no_sleep(monkeypatch):
    """Record backoff delays instead of sleeping."""
    slept = []
    monkeypatch.setattr("ghostjobs.retry.time.sleep", slept.append)
    return slept


class TestExponentialBackoff:
    """Test exponential backoff decorator."""

    def test_success_on_first_try(self, no_sleep):
        """Function that succeeds immediately should not retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.1)
        def succeeds():
            call_count[0] += 1
            return "ok"

        assert succeeds() == "ok"
        assert call_count[0] == 1
        assert no_sleep == []

    def test_retry_then_succeed(self, no_sleep):
        """Function that fails then succeeds should retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01)
        def fails_twice():
            call_count[0] += 1
            if call_count[0] < 3:
                raise ConnectionError("Temporary failure")
            return "ok"

        assert fails_twice() == "ok"
        assert call_count[0] == 3

    def test_all_retries_exhausted(self, no_sleep):
        """Should raise RetryError after all attempts fail."""
        call_count = [0]

        @exponential_backoff(max_retries=2, base_delay=0.01)
        def always_fails():
            call_count[0] += 1
            raise ValueError("Always fails")

        with pytest.raises(RetryError):
            always_fails()

        assert call_count[0] == 3  # Initial + 2 retries

    def test_only_catches_specified_exceptions(self, no_sleep):
        """Should only retry on specified exception types."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01, exceptions=(ConnectionError,))
        def raises_value_error():
            call_count[0] += 1
            raise ValueError("Not retryable")

        with pytest.raises(ValueError):
            raises_value_error()

        assert call_count[0] == 1

    def test_exponential_delay(self, no_sleep):
        """Delay should double after each failure."""
        delays = []

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exponential_base=2.0,
            on_retry=lambda attempt, exc, delay: delays.append(delay),
        )
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert delays == [0.01, 0.02, 0.04]
        assert no_sleep == delays

    def test_max_delay_cap(self, no_sleep):
        """Delay should not exceed max_delay."""

        @exponential_backoff(max_retries=5, base_delay=1.0, max_delay=2.0, exponential_base=3.0)
        def always_fails():
            raise ConnectionError("Test")

        with pytest.raises(RetryError):
            always_fails()

        assert len(no_sleep) == 5
        assert all(d <= 2.0 for d in no_sleep)


class TestHttpRetry:
    """Test retry behaviour of adapter HTTP fetches."""

    def test_http_status_retry_logic(self):
        """Should correctly identify retryable HTTP status codes."""
        for status in (408, 429, 500, 502, 503, 504):
            assert should_retry_http_status(status)
        for status in (200, 401, 403, 404):
            assert not should_retry_http_status(status)

    def test_transient_status_is_retried(self, no_sleep):
        """A 503 followed by a 200 should succeed."""
        unavailable = Mock(status_code=503)
        ok = Mock(status_code=200)
        with patch("ghostjobs.sources.common.requests.get", side_effect=[unavailable, ok]) as get:
            assert fetch_with_error_handling("https://example.com/job", "web") is ok
        assert get.call_count == 2

    def test_persistent_rate_limit_gives_up(self, no_sleep):
        """Retries exhausted on 429 should return None."""
        limited = Mock(status_code=429)
        with patch("ghostjobs.sources.common.requests.get", return_value=limited) as get:
            assert fetch_with_error_handling("https://example.com/job", "web") is None
        assert get.call_count == 3
