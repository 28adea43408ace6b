"""Per-endpoint request spacing shared by every worker thread."""

import logging
import random
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from sourdough_finder.core.errors import RunCancelled

logger = logging.getLogger(__name__)


class SpacingLimiter:
    """Enforce a randomized minimum gap between successive calls to one endpoint.

    The gap is measured from the previous ``acquire`` so a request that fails
    immediately still pushes the next one out by the full spacing. When a
    ``cancel_event`` is given the wait wakes on cancellation and ``acquire``
    raises ``RunCancelled`` instead of releasing the request early.
    """

    def __init__(
        self,
        spacing: Tuple[float, float],
        *,
        sleep: Optional[Callable[[float], object]] = None,
        clock: Callable[[], float] = time.monotonic,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        low, high = spacing
        if low < 0 or high < low:
            raise ValueError(f"invalid spacing range {spacing!r}")
        self.spacing = (low, high)
        if sleep is None:
            sleep = cancel_event.wait if cancel_event is not None else time.sleep
        self._sleep = sleep
        self._clock = clock
        self._cancel_event = cancel_event
        self._lock = threading.Lock()
        self._last: Optional[float] = None
        self.total_requests = 0

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise RunCancelled("run cancelled while waiting for request spacing")

    def acquire(self) -> float:
        """Block until the endpoint may be called again; return the time waited."""
        with self._lock:
            self._check_cancelled()
            waited = 0.0
            if self._last is not None:
                target = random.uniform(*self.spacing)
                elapsed = self._clock() - self._last
                if elapsed < target:
                    waited = target - elapsed
                    self._sleep(waited)
                    self._check_cancelled()
            self._last = self._clock()
            self.total_requests += 1
            return waited


class LimiterRegistry:
    """Hand out one ``SpacingLimiter`` per endpoint name."""

    def __init__(
        self,
        spacing: Tuple[float, float],
        *,
        sleep: Optional[Callable[[float], object]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.spacing = spacing
        self._sleep = sleep
        self._cancel_event = cancel_event
        self._limiters: Dict[str, SpacingLimiter] = {}
        self._lock = threading.Lock()

    def for_endpoint(self, endpoint: str, spacing: Optional[Tuple[float, float]] = None) -> SpacingLimiter:
        with self._lock:
            limiter = self._limiters.get(endpoint)
            if limiter is None:
                limiter = SpacingLimiter(
                    spacing or self.spacing,
                    sleep=self._sleep,
                    cancel_event=self._cancel_event,
                )
                self._limiters[endpoint] = limiter
                logger.debug("Created limiter for %s spacing=%s", endpoint, limiter.spacing)
            return limiter
