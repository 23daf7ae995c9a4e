import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class DispatchCounters:
    """Counters for messages handled by the dispatcher."""
    messages_seen: int = 0
    messages_ignored: int = 0
    links_detected: int = 0
    appended: int = 0
    evicted: int = 0
    skipped: int = 0
    read_failures: int = 0
    mutation_failures: int = 0
    blocked_evictions: int = 0
    unexpected_errors: int = 0


class DispatchStats:
    """Thread-safe collector of dispatcher counters."""

    def __init__(self):
        self._lock = threading.Lock()
        self._counters = DispatchCounters()
        self._started_at = datetime.now(timezone.utc)
        self._last_action_at: Optional[datetime] = None

    def increment(self, name: str, amount: int = 1) -> None:
        """Increment the named counter."""
        with self._lock:
            if not hasattr(self._counters, name):
                raise KeyError(f"Unknown counter: {name}")
            setattr(self._counters, name, getattr(self._counters, name) + amount)
            if name in ('appended', 'skipped'):
                self._last_action_at = datetime.now(timezone.utc)

    def get(self, name: str) -> int:
        with self._lock:
            return getattr(self._counters, name)

    def snapshot(self) -> Dict[str, Any]:
        """Return a point-in-time copy of all counters."""
        with self._lock:
            data = asdict(self._counters)
            data['started_at'] = self._started_at.isoformat()
            data['last_action_at'] = self._last_action_at.isoformat() if self._last_action_at else None
            return data
