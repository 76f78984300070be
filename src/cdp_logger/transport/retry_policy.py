"""Reconnect delay policy.

The default policy reproduces the server-side expectation of a fixed one second
pause between reconnect attempts; a capped exponential backoff with jitter can
be configured instead.
"""

from __future__ import annotations

import random

from cdp_logger.const import CDP_RECONNECT_DELAY


class RetryPolicy:
    """Exponential backoff retry policy with jitter.

    With ``max_delay_seconds == base_delay_seconds`` and no jitter (the
    ``fixed()`` policy) every attempt waits exactly the base delay.
    """

    def __init__(
        self,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 30.0,
        jitter_factor: float = 0.1,
    ):
        """Initialize retry policy.

        Args:
            base_delay_seconds: Base delay for first retry (default: 1.0s)
            max_delay_seconds: Maximum delay cap (default: 30.0s)
            jitter_factor: Jitter as fraction of delay (default: 0.1 = 10%)
        """
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.jitter_factor = jitter_factor

    @classmethod
    def fixed(cls, delay_seconds: float = CDP_RECONNECT_DELAY) -> RetryPolicy:
        """Constant delay, no backoff, no jitter."""
        return cls(base_delay_seconds=delay_seconds, max_delay_seconds=delay_seconds, jitter_factor=0.0)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt.

        Formula: min(base_delay * (2 ** attempt), max_delay) + jitter
        Jitter: random value between 0 and delay * jitter_factor

        Args:
            attempt: Retry attempt number (0-indexed, so attempt=0 is first retry)

        Returns:
            Delay in seconds
        """
        delay = min(self.base_delay_seconds * (2 ** min(attempt, 32)), self.max_delay_seconds)
        if not self.jitter_factor:
            return delay
        return delay + random.uniform(0, delay * self.jitter_factor)

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(base_delay={self.base_delay_seconds}s, "
            f"max_delay={self.max_delay_seconds}s, "
            f"jitter_factor={self.jitter_factor})"
        )
