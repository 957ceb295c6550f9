"""Retry budget for whole-request retries.

Delays grow exponentially from the base and are capped:
attempt 1 → base, attempt 2 → 2 * base, attempt 3 → 4 * base, ... ≤ cap
"""

from dataclasses import dataclass


@dataclass
class RetryState:
    """Failure counter for one user message.

    Attributes:
        max_attempts: Total outbound attempts allowed
        base_delay_s: Delay after the first failure
        cap_s: Upper bound for any delay
        attempt: Failures recorded so far
    """

    max_attempts: int = 3
    base_delay_s: float = 1.0
    cap_s: float = 10.0
    attempt: int = 0

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt."""
        return min(self.base_delay_s * 2 ** (attempt - 1), self.cap_s)

    def record_failure(self) -> float:
        """Count one failed attempt and return the delay before the next one."""
        self.attempt += 1
        return self.delay_for(self.attempt)

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts
