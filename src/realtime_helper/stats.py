# stats.py
"""Search query statistics collaborators."""

import threading
from abc import ABC, abstractmethod
from collections import deque

from .models import QueryRecord, QueryStatsSnapshot

MAX_RECENT_QUERIES = 50


class QueryStatsRecorder(ABC):
    """Records served searches and exposes a snapshot of them."""

    @abstractmethod
    def record(self, entry: QueryRecord) -> None:
        """Count one search and remember it as the most recent."""

    @abstractmethod
    def snapshot(self) -> QueryStatsSnapshot:
        """Return the total count and the recent records, newest first."""

    @abstractmethod
    def reset(self) -> None:
        """Clear the counter and the recent records."""


class InMemoryQueryStats(QueryStatsRecorder):
    """Process-local statistics, lost on restart.

    Handlers run in a thread pool, so updates are serialized with a lock.
    """

    def __init__(self, max_recent: int = MAX_RECENT_QUERIES):
        self.max_recent = max_recent
        self._lock = threading.Lock()
        self._total = 0
        self._recent: deque = deque(maxlen=max_recent)

    def record(self, entry: QueryRecord) -> None:
        with self._lock:
            self._total += 1
            self._recent.appendleft(entry)

    def snapshot(self) -> QueryStatsSnapshot:
        with self._lock:
            return QueryStatsSnapshot(total=self._total, recent=list(self._recent))

    def reset(self) -> None:
        with self._lock:
            self._total = 0
            self._recent.clear()


class NullQueryStats(QueryStatsRecorder):
    """Discards every record."""

    def record(self, entry: QueryRecord) -> None:
        return None

    def snapshot(self) -> QueryStatsSnapshot:
        return QueryStatsSnapshot()

    def reset(self) -> None:
        return None
