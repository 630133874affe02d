"""
Tests for retry logic.
"""

import pytest
from jobvault.retry import (
    exponential_backoff,
    is_transient_error,
    RetryError,
)


class TestExponentialBackoff:
    """Test exponential backoff decorator."""

    def test_success_on_first_try(self):
        """Function that succeeds immediately should not retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.1)
        def succeeds():
            call_count[0] += 1
            return "success"

        result = succeeds()
        assert result == "success"
        assert call_count[0] == 1

    def test_retry_then_succeed(self):
        """Function that fails then succeeds should retry."""
        call_count = [0]

        @exponential_backoff(max_retries=3, base_delay=0.01)
        def fails_twice():
            call_count[0] += 1
            if call_count[0] < 3:
                raise OSError("Resource temporarily unavailable")
            return "success"

        result = fails_twice()
        assert result == "success"
        assert call_count[0] == 3

    def test_all_retries_exhausted(self):
        """Should raise RetryError after all attempts fail."""
        call_count = [0]

        @exponential_backoff(max_retries=2, base_delay=0.01)
        def always_fails():
            call_count[0] += 1
            raise ValueError("Always fails")

        with pytest.raises(RetryError):
            always_fails()

        assert call_count[0] == 3  # Initial + 2 retries

    def test_only_catches_specified_exceptions(self):
        """Should only retry on specified exception types."""
        call_count = [0]

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exceptions=(OSError,)
        )
        def raises_value_error():
            call_count[0] += 1
            raise ValueError("Not retryable")

        # Should not retry, raises original exception
        with pytest.raises(ValueError):
            raises_value_error()

        assert call_count[0] == 1  # No retries

    def test_exponential_delay(self):
        """Delay should increase exponentially."""
        delays = []

        def on_retry_callback(attempt, exception, delay):
            delays.append(delay)

        @exponential_backoff(
            max_retries=3,
            base_delay=0.01,
            exponential_base=2.0,
            on_retry=on_retry_callback
        )
        def always_fails():
            raise OSError("Test")

        with pytest.raises(RetryError):
            always_fails()

        # Check delays are increasing
        assert len(delays) == 3
        assert delays[0] == 0.01
        assert delays[1] == 0.02
        assert delays[2] == 0.04

    def test_max_delay_cap(self, monkeypatch):
        """Delay should not exceed max_delay."""
        delays = []
        monkeypatch.setattr("jobvault.retry.time.sleep", lambda _: None)

        def on_retry_callback(attempt, exception, delay):
            delays.append(delay)

        @exponential_backoff(
            max_retries=5,
            base_delay=1.0,
            max_delay=2.0,
            exponential_base=3.0,
            on_retry=on_retry_callback
        )
        def always_fails():
            raise OSError("Test")

        with pytest.raises(RetryError):
            always_fails()

        # All delays should be capped at max_delay
        assert all(d <= 2.0 for d in delays)

    def test_retry_error_chains_cause(self):
        @exponential_backoff(max_retries=0)
        def fails():
            raise OSError("disk I/O error")

        with pytest.raises(RetryError) as exc_info:
            fails()
        assert isinstance(exc_info.value.__cause__, OSError)


class TestTransientErrorDetection:
    """Test transient error detection utilities."""

    def test_detects_lock_contention(self):
        """Should detect SQLite lock errors as transient."""
        assert is_transient_error(Exception("database is locked"))
        assert is_transient_error(Exception("Database table is locked"))

    def test_detects_io_errors(self):
        errors = [
            OSError("disk I/O error"),
            OSError("Resource temporarily unavailable"),
            TimeoutError("Operation timeout"),
        ]
        for error in errors:
            assert is_transient_error(error)

    def test_non_transient_errors(self):
        """Should not detect permanent errors as transient."""
        errors = [
            Exception("no such table: kv_entries"),
            ValueError("Invalid data"),
            PermissionError("Permission denied"),
        ]
        for error in errors:
            assert not is_transient_error(error)
