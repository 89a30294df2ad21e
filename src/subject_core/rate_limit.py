"""
subject_core/rate_limit.py

Token bucket rate limiter used to space out API requests.

Usage:
------
    from subject_core.rate_limit import RateLimiter

    # At most one request per second, no bursts
    limiter = RateLimiter.for_interval(1.0)

    limiter.acquire()
    response = session.get(url)
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class RateLimiter:
    """
    Token bucket rate limiter.

    Attributes:
        capacity: Maximum number of tokens in the bucket
        refill_rate: Tokens added per second
        tokens: Current number of tokens
        last_refill: Timestamp of last token refill
        clock: Time function for testing (defaults to time.monotonic)
        sleep: Sleep function for testing (defaults to time.sleep)
    """

    capacity: float = 1.0
    refill_rate: float = 1.0
    tokens: float = field(init=False, default=0.0)
    last_refill: float = field(init=False, default=0.0)
    _lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        self.tokens = self.capacity
        self.last_refill = self.clock()

    @classmethod
    def for_interval(
        cls,
        interval: float,
        *,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> RateLimiter:
        """Limiter allowing one acquisition every ``interval`` seconds."""
        if interval <= 0:
            raise ValueError(f"Request interval must be positive, got {interval}")
        return cls(
            capacity=1.0,
            refill_rate=1.0 / interval,
            clock=clock or time.monotonic,
            sleep=sleep or time.sleep,
        )

    def _refill(self) -> None:
        """Refill tokens based on elapsed time (must hold lock)."""
        now = self.clock()
        elapsed = now - self.last_refill
        if elapsed > 0:
            self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
            self.last_refill = now

    def try_acquire(self, tokens: float = 1.0) -> bool:
        with self._lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False

    def acquire(self, tokens: float = 1.0) -> float:
        """
        Acquire tokens, blocking if necessary.

        Returns the time waited in seconds.
        """
        waited = 0.0
        while True:
            with self._lock:
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return waited
                needed = tokens - self.tokens
                wait_time = needed / self.refill_rate if self.refill_rate > 0 else 1.0
            self.sleep(wait_time)
            waited += wait_time

    def available_tokens(self) -> float:
        """Get current available tokens (after refill)."""
        with self._lock:
            self._refill()
            return self.tokens
