"""
Exponential backoff with jitter for the subscription loop.

Equal jitter keeps half of each delay deterministic, so a retry never
fires immediately against an unreachable store:

    temp = min(cap, base * 2^attempt)
    delay = temp/2 + random(0, temp/2)
"""

import random
from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class BackoffConfig:
    """Configuration for reconnect delays."""

    base_delay: float = 0.5  # seconds
    max_delay: float = 30.0  # cap
    max_retries: Optional[int] = None  # consecutive failures before giving up

    def __post_init__(self):
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.max_retries is not None and self.max_retries < 1:
            raise ValueError("max_retries must be >= 1 or None")


class Backoff:
    """Tracks consecutive failures and yields the next delay."""

    def __init__(self, config: BackoffConfig | None = None):
        self._config = config or BackoffConfig()
        self._attempt = 0

    @property
    def attempts(self) -> int:
        return self._attempt

    @property
    def exhausted(self) -> bool:
        """True once max_retries consecutive failures have been recorded."""
        max_retries = self._config.max_retries
        return max_retries is not None and self._attempt >= max_retries

    def calculate_delay(self, attempt: int) -> float:
        base = self._config.base_delay
        cap = self._config.max_delay
        temp = min(cap, base * (2**min(attempt, 32)))
        return temp / 2 + random.uniform(0, temp / 2)

    def next_delay(self) -> float:
        """Record a failure and return how long to wait before retrying."""
        delay = self.calculate_delay(self._attempt)
        self._attempt += 1
        return delay

    def reset(self) -> None:
        """Forget previous failures after a successful sync."""
        self._attempt = 0
