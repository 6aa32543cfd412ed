"""Bounded exponential backoff for optimistic-concurrency retries."""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times a ConflictError is retried and how long to wait between.

    Attempt ``n`` (1-based) that fails waits
    ``min(max_delay, base_delay * multiplier ** (n - 1))`` seconds, scaled
    by a random factor in [1 - jitter, 1] so colliding writers spread out.
    No wait follows the final attempt.
    """

    max_attempts: int = 3
    base_delay: float = 0.01
    max_delay: float = 0.2
    multiplier: float = 2.0
    jitter: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be within [0, 1]")

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Seconds to wait after failed attempt number ``attempt``."""
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        delay = min(self.max_delay, self.base_delay * self.multiplier ** (attempt - 1))
        if self.jitter:
            delay *= 1 - self.jitter * (rng or random).random()
        return delay

    def delays(self, rng: random.Random | None = None) -> list[float]:
        """Waits between consecutive attempts (``max_attempts - 1`` values)."""
        return [self.delay_for(n, rng) for n in range(1, self.max_attempts)]


NO_WAIT = RetryPolicy(base_delay=0.0, max_delay=0.0, jitter=0.0)
