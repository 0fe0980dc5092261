"""In-process counters for scrape outcomes."""

import threading
from datetime import datetime, timezone

from src.crawlers.errors import ErrorKind

SUCCESS = "success"
OUTCOMES = [SUCCESS] + [kind.value for kind in ErrorKind]


class ScrapeMetrics:
    """Count how each scrape request ended, since process start."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {outcome: 0 for outcome in OUTCOMES}
        self.started_at = datetime.now(timezone.utc)

    def record(self, outcome: str) -> None:
        with self._lock:
            self._counts[outcome] = self._counts.get(outcome, 0) + 1

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)

    @property
    def total(self) -> int:
        with self._lock:
            return sum(self._counts.values())
