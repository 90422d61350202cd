"""
Humanized pacing for requests to the Wayback Machine.

Every wait in the workflow (settling after a navigation, backing off before a
retry, spacing URLs in a batch) goes through a Pacer so the delays stay
randomized and can be replaced in tests.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, Sequence, Tuple


DelayRange = Tuple[float, float]


class Pacer:
    def __init__(self, sleep: Callable[[float], None] = time.sleep, rng: Optional[random.Random] = None):
        """
        Args:
            sleep: function used to block, in seconds
            rng: random source for jitter (seeded in tests)
        """
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.logger = logging.getLogger(__name__)
        self.total_waited = 0.0

    def wait(self, seconds: float) -> float:
        """Sleep for a fixed number of seconds."""
        seconds = max(float(seconds), 0.0)
        if seconds > 0:
            self._sleep(seconds)
            self.total_waited += seconds
        return seconds

    def pause(self, minimum: float, maximum: float) -> float:
        """Sleep for a random duration between minimum and maximum seconds."""
        low, high = sorted((max(float(minimum), 0.0), max(float(maximum), 0.0)))
        delay = self._rng.uniform(low, high)
        self.logger.info(f"Waiting {delay:.1f}s...")
        return self.wait(delay)

    def pause_range(self, window: Sequence[float]) -> float:
        return self.pause(window[0], window[1])

    def backoff(self, base: float, retry_count: int, step: float, jitter: float) -> float:
        """
        Sleep before a retry: base + retry_count * step, plus up to ``jitter``
        random seconds.
        """
        delay = base + retry_count * step
        return self.pause(delay, delay + jitter)
