"""
Resilience infrastructure for Asana calls.

Provides:
- RetryConfig: Configuration for retry behavior
- RateLimiter: Token bucket rate limiting, shared by fan-out workers
- retry_with_backoff: exponential backoff with jitter, honoring Retry-After
"""

import logging
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior with exponential backoff."""

    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    exponential_base: float = 2.0
    retry_on: tuple[type[BaseException], ...] = field(default=(OSError,))


class RateLimiter:
    """Token bucket rate limiter. Thread-safe."""

    def __init__(self, requests_per_minute: int = 150):
        """
        Args:
            requests_per_minute: Maximum requests allowed per minute
        """
        if requests_per_minute <= 0:
            raise ValueError(f"requests_per_minute must be positive, got {requests_per_minute}")
        self.requests_per_minute = requests_per_minute
        self.tokens = float(requests_per_minute)
        self.max_tokens = float(requests_per_minute)
        self.last_update = time.monotonic()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.last_update = now
        refill_rate = self.requests_per_minute / 60.0  # tokens per second
        self.tokens = min(self.max_tokens, self.tokens + elapsed * refill_rate)

    def allow_request(self) -> bool:
        """Take a token if one is available."""
        with self._lock:
            self._refill()
            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return True
            return False

    def get_wait_time(self) -> float:
        """Seconds until the next token (0 if one is available)."""
        with self._lock:
            if self.tokens >= 1.0:
                return 0.0
            refill_rate = self.requests_per_minute / 60.0
            return (1.0 - self.tokens) / refill_rate

    def acquire(self, sleep: Callable[[float], None] = time.sleep) -> None:
        """Block until a token is available."""
        while not self.allow_request():
            sleep(max(self.get_wait_time(), 0.01))


def retry_with_backoff(
    func: Callable[[], T],
    config: RetryConfig,
    logger_: logging.Logger | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Execute a function with exponential backoff and jitter.

    Only exceptions listed in ``config.retry_on`` are retried; anything else
    propagates immediately. An exception carrying a ``retry_after`` attribute
    (seconds) stretches the delay to at least that long.

    Raises:
        Last exception if all retries exhausted
    """
    last_error: BaseException | None = None

    for attempt in range(config.max_retries + 1):
        try:
            return func()
        except config.retry_on as e:
            last_error = e

            if attempt < config.max_retries:
                delay = min(
                    config.base_delay * (config.exponential_base**attempt),
                    config.max_delay,
                )
                retry_after = getattr(e, "retry_after", None)
                if retry_after:
                    delay = max(delay, min(float(retry_after), config.max_delay))
                jitter = random.uniform(0, delay * 0.1)  # noqa: S311
                actual_delay = delay + jitter

                if logger_:
                    logger_.warning(
                        f"Attempt {attempt + 1} failed: {e}. Retrying in {actual_delay:.1f}s"
                    )
                sleep(actual_delay)

    if logger_:
        logger_.error(f"All {config.max_retries + 1} attempts failed")
    raise last_error
