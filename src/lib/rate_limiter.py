"""Per-caller sliding-window rate limiter.

Best-effort and single-process: state lives in this process's memory, is
not shared between workers and is lost on restart. Anyone who needs a hard
quota across replicas must enforce it elsewhere (e.g. at the gateway).
"""

import asyncio
import logging
import threading
import time
from collections import deque
from typing import Callable, Optional

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0
MAX_PER_WINDOW = 10


class SlidingWindowRateLimiter:
    """
    Admits at most ``max_requests`` calls per caller in any trailing window.

    Each ``admit`` prunes that caller's expired timestamps, compares the
    remaining count, and records ``now`` only if it admits. A background
    sweep drops callers whose window has emptied, so memory follows the
    number of active callers rather than the number ever seen.

    Usage:
        limiter = SlidingWindowRateLimiter()
        limiter.start()            # inside a running event loop
        if not limiter.admit(caller_id): ...
        await limiter.aclose()
    """

    def __init__(
        self,
        max_requests: int = MAX_PER_WINDOW,
        window_seconds: float = WINDOW_SECONDS,
        sweep_interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.sweep_interval_seconds = sweep_interval_seconds or window_seconds
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        # Held only for prune/compare/record, never across I/O
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def retry_after_seconds(self) -> int:
        """Fixed retry hint handed to refused callers."""
        return int(self.window_seconds)

    def _prune(self, timestamps: deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while timestamps and timestamps[0] <= cutoff:
            timestamps.popleft()

    def admit(self, caller_id: str) -> bool:
        """Return True and count the call if *caller_id* is under quota."""
        with self._lock:
            now = self._clock()
            timestamps = self._windows.setdefault(caller_id, deque())
            self._prune(timestamps, now)

            if len(timestamps) >= self.max_requests:
                return False

            timestamps.append(now)
            return True

    def sweep(self) -> int:
        """Drop every caller whose window is empty. Returns how many were dropped."""
        with self._lock:
            now = self._clock()
            stale = []
            for caller_id, timestamps in self._windows.items():
                self._prune(timestamps, now)
                if not timestamps:
                    stale.append(caller_id)
            for caller_id in stale:
                del self._windows[caller_id]
        return len(stale)

    @property
    def tracked_callers(self) -> int:
        with self._lock:
            return len(self._windows)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            dropped = self.sweep()
            if dropped:
                logger.debug(f"Rate limiter sweep dropped {dropped} idle callers")

    def start(self) -> None:
        """Start the background sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def aclose(self) -> None:
        """Cancel the background sweep."""
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None

    async def __aenter__(self) -> "SlidingWindowRateLimiter":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
