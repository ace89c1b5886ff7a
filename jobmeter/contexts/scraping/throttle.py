"""
Politeness pacing for requests to the job board.

All physical fetches of a batch go through one RateLimiter. Its lock is held
for the whole fetch + pause, so workers processing different filter groups
still form a single request channel with human-like cadence:
- a random delay in [min_delay, max_delay) after every request
- an extra pause in [pause_duration, pause_duration + pause_jitter) after every Nth request

Every wait is cancellable through the limiter's cancel event.
"""

import random
import threading
from typing import Callable, Optional, TypeVar

from loguru import logger

T = TypeVar("T")


class BatchCancelled(Exception):
    """Raised inside a batch once cancellation has been requested."""


class RateLimiter:
    def __init__(
        self,
        politeness_config,
        cancel_event: Optional[threading.Event] = None,
        rng: Optional[random.Random] = None,
    ):
        self.min_delay = float(politeness_config.min_delay)
        self.max_delay = float(politeness_config.max_delay)
        self.pause_every_n_requests = int(politeness_config.pause_every_n_requests)
        self.pause_duration = float(politeness_config.pause_duration)
        self.pause_jitter = float(politeness_config.get("pause_jitter", 30.0))

        assert self.max_delay >= self.min_delay >= 0, (
            f"Politeness delays must satisfy 0 <= min_delay <= max_delay, got {self.min_delay} and {self.max_delay}"
        )

        self.cancel_event = cancel_event or threading.Event()
        self.rng = rng or random.Random()

        self.request_count = 0
        self.total_wait = 0.0
        self._channel = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def wait(self, seconds: float) -> None:
        """Suspend for ``seconds``, waking early (and raising) if the batch is cancelled."""
        if self.cancel_event.is_set():
            raise BatchCancelled("Batch cancelled")
        if seconds > 0 and self.cancel_event.wait(seconds):
            raise BatchCancelled("Batch cancelled while waiting")
        self.total_wait += max(seconds, 0.0)

    def _draw_delay(self) -> float:
        if self.max_delay == self.min_delay:
            return self.min_delay
        return self.rng.uniform(self.min_delay, self.max_delay)

    def pause(self) -> None:
        """Count one request and apply the politeness delay that follows it."""
        self.request_count += 1
        self.wait(self._draw_delay())

        # Every N requests, add a longer pause (a human taking a break)
        if self.pause_every_n_requests > 0 and self.request_count % self.pause_every_n_requests == 0:
            long_pause = self.pause_duration + self.rng.random() * self.pause_jitter
            logger.info(f"Taking a longer pause after {self.request_count} requests ({long_pause:.1f}s)")
            self.wait(long_pause)

    def throttled(self, fetch: Callable[..., T], *args, **kwargs) -> T:
        """
        Run one physical fetch through the shared channel.

        The fetch happens first, then the politeness delay, both while holding
        the channel so no other worker can fetch in between.
        """
        with self._channel:
            if self.cancel_event.is_set():
                raise BatchCancelled("Batch cancelled")
            try:
                result = fetch(*args, **kwargs)
            except Exception as error:
                # A failed fetch still paces, but its own error wins over a cancellation
                try:
                    self.pause()
                except BatchCancelled:
                    raise error
                raise
            self.pause()
            return result
