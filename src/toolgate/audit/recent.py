"""Bounded in-memory view of the latest audit entries, for display."""

import threading
from collections import deque

from toolgate.schema import AuditEntry


class RecentActivity:
    """
    Ring buffer of the last N entries.

    Old entries are evicted silently. This is a cache for responsive UIs,
    never the system of record: query the AuditLog for history.
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity <= 0:
            msg = "capacity must be positive"
            raise ValueError(msg)
        self.capacity = capacity
        self._entries: deque[AuditEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def push(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def latest(self, n: int | None = None) -> list[AuditEntry]:
        """Newest first."""
        with self._lock:
            items = list(reversed(self._entries))
        return items if n is None else items[:n]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
