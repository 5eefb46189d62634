"""Bounded retry for outbound calls made by pipeline steps."""
import time
from typing import Callable, TypeVar

from castmint.errors import TransientError, RateLimitedError
from castmint.logging_conf import logger

T = TypeVar("T")


class RetryPolicy:
    """Retry transient failures with capped exponential backoff.

    Timeouts and transport errors are retried. Rate limits are retried after
    the server's Retry-After (or ``rate_limit_delay``). Everything else is
    raised on the first occurrence.
    """

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0, max_delay: float = 30.0,
                 rate_limit_delay: float = 60.0, sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rate_limit_delay = rate_limit_delay
        self.sleep = sleep

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def call(self, label: str, fn: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                return fn()
            except RateLimitedError as e:
                if attempt + 1 >= self.max_attempts:
                    raise
                wait_time = e.retry_after if e.retry_after is not None else self.rate_limit_delay
                logger.warning(f"{label}: rate limited. Waiting {wait_time}s...")
            except TransientError as e:
                if attempt + 1 >= self.max_attempts:
                    logger.error(f"{label}: giving up after {attempt + 1} attempts: {e}")
                    raise
                wait_time = self.backoff(attempt)
                logger.warning(
                    f"{label}: {e}. Retrying in {wait_time}s "
                    f"({self.max_attempts - attempt - 1} attempts remaining)"
                )
            self.sleep(wait_time)
            attempt += 1
