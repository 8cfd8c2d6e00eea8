"""
Reconnect Backoff Policy

Computes how long to wait before the next connection attempt. Delays grow
exponentially with the attempt number, are capped at max_delay, and are
shortened by a random fraction (jitter) so many clients that lost the
same server do not reconnect in lockstep.
"""

import random
from typing import Optional

DEFAULT_BASE_DELAY = 0.5  # seconds before the first retry
DEFAULT_MAX_DELAY = 30.0  # upper bound on any delay
DEFAULT_MULTIPLIER = 2.0
DEFAULT_JITTER = 0.2  # fraction of the delay that may be removed


class RetryScheduler:
    """
    Stateless exponential backoff policy.

    Attributes:
        base_delay: Delay before attempt 0, in seconds
        max_delay: Maximum delay, in seconds
        multiplier: Growth factor per attempt
        jitter: Fraction in [0, 1) by which a delay may be shortened
    """

    def __init__(
        self,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        multiplier: float = DEFAULT_MULTIPLIER,
        jitter: float = DEFAULT_JITTER,
        rng: Optional[random.Random] = None,
    ):
        if base_delay <= 0 or max_delay < base_delay:
            raise ValueError("Require 0 < base_delay <= max_delay")
        if multiplier < 1:
            raise ValueError("multiplier must be at least 1")
        if not 0 <= jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter = jitter
        self._rng = rng or random.Random()

    def next_delay(self, attempt: int) -> float:
        """
        Delay before the given reconnect attempt.

        Args:
            attempt: Number of consecutive failed attempts so far (0-based)

        Returns:
            Seconds to wait, in [capped * (1 - jitter), capped] where
            capped = min(max_delay, base_delay * multiplier ** attempt)
        """
        if attempt < 0:
            raise ValueError("attempt must be non-negative")

        # Past this exponent the cap always wins; avoid float overflow
        capped = self.max_delay
        if attempt < 64:
            capped = min(
                self.max_delay, self.base_delay * self.multiplier**attempt
            )
        return capped * (1.0 - self.jitter * self._rng.random())
