"""
Interrupt rate limiter.

Rules:
- A non-privileged interrupt arriving less than rate_limit_ms after the
  last accepted interrupt is rejected.
- Privileged types always pass.
- Every accepted interrupt (privileged included) becomes the new
  reference point.
"""

from __future__ import annotations

import time
from typing import Callable, Iterable


class RateLimiter:
    def __init__(
        self,
        rate_limit_ms: int,
        privileged_types: Iterable[str] = (),
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.rate_limit_ms = rate_limit_ms
        self.privileged_types = frozenset(privileged_types)
        self.last_interrupt_time: int | None = None
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)

    def is_privileged(self, interrupt_type: str) -> bool:
        return interrupt_type in self.privileged_types

    def allow(self, interrupt_type: str) -> bool:
        """Gate one arrival; on acceptance record it as the latest."""
        now = self._clock()

        if not self.is_privileged(interrupt_type) and self.last_interrupt_time is not None:
            if now - self.last_interrupt_time < self.rate_limit_ms:
                return False

        self.last_interrupt_time = now
        return True
