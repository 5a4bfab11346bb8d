import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class _Counters:
    events_processed: int = 0
    events_delivered: int = 0
    events_failed: int = 0
    events_dead_lettered: int = 0
    events_recovered: int = 0
    unknown_events: int = 0
    poll_cycles: int = 0
    empty_polls: int = 0
    processing_errors: int = 0
    last_poll_at: Optional[str] = None
    last_event_at: Optional[str] = None


class OutboxMetrics:
    """Running counters for one dispatcher; read concurrently by health checks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters = _Counters()

    def _bump(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self._counters, name, getattr(self._counters, name) + amount)

    def record_poll(self, now: datetime) -> None:
        with self._lock:
            self._counters.poll_cycles += 1
            self._counters.last_poll_at = now.isoformat()

    def record_empty_poll(self) -> None:
        self._bump("empty_polls")

    def record_event_started(self, now: datetime) -> None:
        with self._lock:
            self._counters.events_processed += 1
            self._counters.last_event_at = now.isoformat()

    def record_delivered(self) -> None:
        self._bump("events_delivered")

    def record_failed(self) -> None:
        self._bump("events_failed")

    def record_dead_lettered(self) -> None:
        self._bump("events_dead_lettered")

    def record_recovered(self, count: int) -> None:
        self._bump("events_recovered", count)

    def record_unknown(self) -> None:
        self._bump("unknown_events")

    def record_processing_error(self) -> None:
        self._bump("processing_errors")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return asdict(self._counters)
