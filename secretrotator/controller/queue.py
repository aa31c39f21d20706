"""Delayed work queue and retry backoff for policy reconciliation."""

import threading
from datetime import datetime, timedelta
from typing import Dict, List, Optional


class RequeueQueue:
    """Holds each policy name at most once, with the time it becomes due."""

    def __init__(self):
        self._due: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._due)

    def __contains__(self, name: str) -> bool:
        return name in self._due

    def add_after(self, name: str, delay: timedelta, now: datetime) -> None:
        """
        Queue a policy to become due after a delay.

        An already queued policy keeps whichever due time is earlier.
        """
        due = now + max(delay, timedelta(0))
        with self._lock:
            current = self._due.get(name)
            if current is None or due < current:
                self._due[name] = due

    def remove(self, name: str) -> None:
        with self._lock:
            self._due.pop(name, None)

    def pop_due(self, now: datetime) -> List[str]:
        """Remove and return every policy due at ``now``, earliest first."""
        with self._lock:
            ready = sorted((due, name) for name, due in self._due.items() if due <= now)
            for _, name in ready:
                del self._due[name]
        return [name for _, name in ready]

    def next_due(self) -> Optional[datetime]:
        """Return the earliest due time, or None when the queue is empty."""
        with self._lock:
            return min(self._due.values()) if self._due else None

    def due_time(self, name: str) -> Optional[datetime]:
        with self._lock:
            return self._due.get(name)


class RateLimiter:
    """Per-policy exponential backoff for immediate requeues and errors."""

    def __init__(
        self,
        base_delay: timedelta = timedelta(milliseconds=5),
        max_delay: timedelta = timedelta(seconds=1000),
    ):
        """
        Initialize rate limiter.

        Args:
            base_delay: Delay after the first failure
            max_delay: Upper bound for the delay
        """
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[str, int] = {}
        self._lock = threading.Lock()

    def when(self, name: str) -> timedelta:
        """Record a failure for ``name`` and return how long to back off."""
        with self._lock:
            failures = self._failures.get(name, 0)
            self._failures[name] = failures + 1

        # Cap the exponent so the multiplication cannot overflow timedelta
        exponent = min(failures, 40)
        return min(self.base_delay * (2 ** exponent), self.max_delay)

    def failures(self, name: str) -> int:
        with self._lock:
            return self._failures.get(name, 0)

    def forget(self, name: str) -> None:
        """Reset the backoff for ``name``."""
        with self._lock:
            self._failures.pop(name, None)
