"""Tests for LLM retry utilities."""

import httpx
import openai
import pytest

from ember.config.models import EmberConfig, RetrySettings
from ember.llm.retry import (
    RetryConfig,
    is_retryable_error,
    retry_after_ms,
    retry_delay_ms,
    with_retry,
)
from ember.memory.errors import (
    EmbeddingError,
    StoreError,
    TransportError,
    ValidationError,
)
from ember.memory.runtime import retry_config_from_settings


class TestIsRetryableError:
    """Tests for is_retryable_error."""

    def test_rate_limit_error(self):
        """Test rate limit errors are retryable."""
        assert is_retryable_error(Exception("Rate limit exceeded"))
        assert is_retryable_error(Exception("rate_limit_error"))
        assert is_retryable_error(Exception("Too many requests"))

    def test_server_errors(self):
        """Test server errors are retryable."""
        assert is_retryable_error(Exception("Error 500"))
        assert is_retryable_error(Exception("502 Bad Gateway"))
        assert is_retryable_error(Exception("503 Service Unavailable"))
        assert is_retryable_error(Exception("504 Gateway Timeout"))

    def test_overloaded_error(self):
        """Test overloaded errors are retryable."""
        assert is_retryable_error(Exception("overloaded_error"))
        assert is_retryable_error(Exception("Server is overloaded"))

    def test_connection_errors(self):
        """Test connection errors are retryable."""
        assert is_retryable_error(Exception("Connection error"))
        assert is_retryable_error(Exception("Timeout error"))

    def test_status_code_attribute(self):
        """Test errors with status_code attribute."""

        class HttpError(Exception):
            def __init__(self, status_code: int):
                self.status_code = status_code
                super().__init__(f"HTTP {status_code}")

        assert is_retryable_error(HttpError(429))
        assert is_retryable_error(HttpError(500))
        assert is_retryable_error(HttpError(503))
        assert not is_retryable_error(HttpError(400))
        assert not is_retryable_error(HttpError(404))

    def test_retryable_attribute(self):
        """Errors can declare themselves transient."""
        assert is_retryable_error(TransportError("socket closed"))
        assert is_retryable_error(EmbeddingError("provider said no"))
        assert not is_retryable_error(ValidationError("owner_id is required"))
        assert not is_retryable_error(StoreError("duplicate id"))

    def test_non_retryable_errors(self):
        """Test non-retryable errors."""
        assert not is_retryable_error(Exception("Invalid request"))
        assert not is_retryable_error(Exception("Bad request"))
        assert not is_retryable_error(Exception("Authentication failed"))
        assert not is_retryable_error(ValueError("Invalid parameter"))


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_success_no_retry(self):
        """Test successful call without retry."""
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await with_retry(func)
        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retry_on_transient_error(self):
        """Test retry on transient error."""
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise Exception("rate_limit_error")
            return "success"

        config = RetryConfig(enabled=True, max_retries=3, base_delay_ms=10)
        result = await with_retry(func, config=config)
        assert result == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_no_retry_on_non_retryable_error(self):
        """Test no retry on non-retryable error."""
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            raise ValueError("Invalid parameter")

        config = RetryConfig(enabled=True, max_retries=3, base_delay_ms=10)
        with pytest.raises(ValueError, match="Invalid parameter"):
            await with_retry(func, config=config)
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_max_retries_exceeded(self):
        """Test max retries exceeded."""
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            raise Exception("rate_limit_error")

        config = RetryConfig(enabled=True, max_retries=2, base_delay_ms=10)
        with pytest.raises(Exception, match="rate_limit_error"):
            await with_retry(func, config=config)
        assert call_count == 3  # Initial + 2 retries

    @pytest.mark.asyncio
    async def test_retry_disabled(self):
        """Test retry disabled."""
        call_count = 0

        async def func():
            nonlocal call_count
            call_count += 1
            raise Exception("rate_limit_error")

        config = RetryConfig(enabled=False)
        with pytest.raises(Exception, match="rate_limit_error"):
            await with_retry(func, config=config)
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_exponential_backoff(self):
        """Test exponential backoff delay calculation."""
        import time

        call_times: list[float] = []

        async def func():
            call_times.append(time.time())
            if len(call_times) < 3:
                raise Exception("rate_limit_error")
            return "success"

        # Use short delays for testing
        config = RetryConfig(enabled=True, max_retries=3, base_delay_ms=100)
        await with_retry(func, config=config)

        # Check delays are roughly exponential (100ms, 200ms)
        delay1 = call_times[1] - call_times[0]
        delay2 = call_times[2] - call_times[1]

        assert delay1 >= 0.08  # ~100ms with some tolerance
        assert delay2 >= 0.15  # ~200ms with some tolerance
        assert delay2 > delay1  # Second delay should be longer

    @pytest.mark.asyncio
    async def test_delay_is_capped(self, monkeypatch):
        """Backoff never sleeps longer than max_delay_ms."""
        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        monkeypatch.setattr("ember.llm.retry.asyncio.sleep", fake_sleep)

        async def func():
            raise TransportError("connection reset")

        config = RetryConfig(max_retries=4, base_delay_ms=1000, max_delay_ms=3000)
        with pytest.raises(TransportError):
            await with_retry(func, config=config)

        assert delays == [1.0, 2.0, 3.0, 3.0]


def test_retry_config_from_settings():
    config = EmberConfig(
        retry=RetrySettings(enabled=False, max_retries=1, base_delay_ms=5)
    )

    retry = retry_config_from_settings(config)

    assert retry == RetryConfig(
        enabled=False, max_retries=1, base_delay_ms=5, max_delay_ms=30000
    )


def rate_limited(headers: dict[str, str] | None = None) -> openai.RateLimitError:
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    response = httpx.Response(429, request=request, headers=headers)
    return openai.RateLimitError("slow down", response=response, body=None)


class TestProviderErrors:
    def test_sdk_errors_are_retryable(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/responses")
        assert is_retryable_error(rate_limited())
        assert is_retryable_error(openai.APIConnectionError(request=request))

    def test_retry_after_header(self):
        assert retry_after_ms(rate_limited({"retry-after": "7"})) == 7000
        assert retry_after_ms(rate_limited({"retry-after-ms": "250"})) == 250
        assert retry_after_ms(rate_limited({"retry-after": "soon"})) is None
        assert retry_after_ms(rate_limited()) is None
        assert retry_after_ms(ValueError("no response")) is None

    def test_retry_after_stretches_but_never_exceeds_cap(self):
        config = RetryConfig(base_delay_ms=1000, max_delay_ms=5000)

        assert retry_delay_ms(0, config) == 1000
        assert retry_delay_ms(1, config) == 2000
        assert retry_delay_ms(0, config, rate_limited({"retry-after": "3"})) == 3000
        assert retry_delay_ms(0, config, rate_limited({"retry-after": "60"})) == 5000
        assert retry_delay_ms(3, config, rate_limited({"retry-after": "1"})) == 5000
