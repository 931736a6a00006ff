"""Retry with exponential backoff for provider API calls.

Providers wrap each SDK call in ``with_retry``; the memory pipeline itself
never retries. A server-sent ``Retry-After`` header stretches the backoff
but never past ``max_delay_ms``.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import anthropic
import openai

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_PATTERN = re.compile(
    r"overloaded|rate.?limit|too many requests|"
    r"429|500|502|503|504|"
    r"service.?unavailable|server error|internal error|"
    r"connection.?error|timeout",
    re.IGNORECASE,
)

RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504, 529})

# SDK exceptions that are transient regardless of their message.
RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    enabled: bool = True
    max_retries: int = 3
    base_delay_ms: int = 2000
    max_delay_ms: int = 30000


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is worth another attempt.

    Retryable errors include:
    - Errors that declare themselves transient (``retryable = True``)
    - OpenAI/Anthropic connection, rate limit and server errors
    - Errors carrying a retryable HTTP ``status_code``
    - Anything whose message looks like overload, rate limiting or a timeout
    """
    if getattr(error, "retryable", False) is True:
        return True

    if isinstance(error, RETRYABLE_EXCEPTIONS):
        return True

    if getattr(error, "status_code", None) in RETRYABLE_STATUS_CODES:
        return True

    error_type = type(error).__name__.lower()
    if any(
        t in error_type
        for t in ["timeout", "connection", "overloaded", "ratelimit", "rate_limit"]
    ):
        return True

    return bool(RETRYABLE_PATTERN.search(str(error)))


def retry_after_ms(error: Exception) -> int | None:
    """Server-requested wait from a ``Retry-After`` header, if any."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after-ms") or headers.get("retry-after")
    if value is None:
        return None
    try:
        seconds = float(value) / 1000 if "retry-after-ms" in headers else float(value)
    except (TypeError, ValueError):
        return None
    return int(seconds * 1000) if seconds >= 0 else None


def retry_delay_ms(
    attempt: int, config: RetryConfig, error: Exception | None = None
) -> int:
    """Delay before retry number ``attempt + 1`` (attempt counts from 0)."""
    delay = config.base_delay_ms * (2**attempt)
    if error is not None and (requested := retry_after_ms(error)) is not None:
        delay = max(delay, requested)
    return min(delay, config.max_delay_ms)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "API call",
) -> T:
    """Execute an async function with exponential backoff retry.

    Args:
        func: Async function to execute.
        config: Retry configuration.
        operation_name: Name for logging.

    Returns:
        Result of the function.

    Raises:
        The last exception if all retries fail, or immediately for
        non-retryable errors.
    """
    config = config or RetryConfig()

    if not config.enabled:
        return await func()

    attempt = 0
    while True:
        try:
            return await func()
        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt >= config.max_retries:
                logger.warning(
                    "retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt + 1,
                        "error.message": str(e),
                        "error.type": type(e).__name__,
                    },
                )
                raise

            delay_s = retry_delay_ms(attempt, config, e) / 1000
            logger.info(
                "retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_attempts": config.max_retries + 1,
                    "retry_delay_s": round(delay_s, 1),
                    "error.message": str(e),
                    "error.type": type(e).__name__,
                },
            )
            await asyncio.sleep(delay_s)
            attempt += 1
