"""PIN attempt throttle with exponential backoff."""

from __future__ import annotations

import logging
import time

logger = logging.getLogger("stealthvault.rate_limit")

MAX_PIN_ATTEMPTS = 5
PIN_DELAY_BASE = 2  # seconds


class RateLimitExceeded(RuntimeError):
    """Too many consecutive failed PIN attempts."""


class RateLimiter:
    """Sleeps ``delay_base ** failures`` seconds between attempts, then gives up."""

    def __init__(
        self,
        max_attempts: int = MAX_PIN_ATTEMPTS,
        delay_base: float = PIN_DELAY_BASE,
    ):
        self._max_attempts = max_attempts
        self._delay_base = delay_base
        self.attempts = 0
        self.last_attempt: float = 0

    def check(self) -> None:
        if self.attempts >= self._max_attempts:
            logger.error("Maximum of %d PIN attempts exceeded", self._max_attempts)
            raise RateLimitExceeded(
                f"Exceeded the limit of {self._max_attempts} attempts. "
                "Wait before trying again."
            )

        if self.attempts > 0:
            required_delay = self._delay_base**self.attempts
            elapsed = time.time() - self.last_attempt
            if elapsed < required_delay:
                wait_time = required_delay - elapsed
                logger.warning("Rate limiting: waiting %.1fs", wait_time)
                time.sleep(wait_time)

        self.attempts += 1
        self.last_attempt = time.time()

    def reset(self) -> None:
        self.attempts = 0
        self.last_attempt = 0

    @property
    def remaining(self) -> int:
        return max(0, self._max_attempts - self.attempts)
