import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from rental_outbox.domain.models.events import OutboxCounts, OutboxItem, OutboxStatus


class InMemoryOutboxStore:
    """Process-local outbox store.

    Every transition runs under one lock, so a claim is a single conditional
    PENDING -> PROCESSING update with no read-then-write window. Items handed
    out are copies, like rows fetched from a database.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, OutboxItem] = {}

    def add(self, item: OutboxItem) -> OutboxItem:
        if item.status is not OutboxStatus.PENDING:
            raise ValueError("outbox items must be written as PENDING")
        with self._lock:
            if item.id in self._items:
                raise ValueError(f"duplicate outbox item id {item.id}")
            self._items[item.id] = replace(item, payload=dict(item.payload))
        return item

    def put(self, item: OutboxItem) -> None:
        """Store an item in any state; used to seed fixtures."""
        with self._lock:
            self._items[item.id] = replace(item)

    def get(self, item_id: str) -> Optional[OutboxItem]:
        with self._lock:
            item = self._items.get(item_id)
            return replace(item) if item else None

    def all(self) -> List[OutboxItem]:
        with self._lock:
            return sorted((replace(item) for item in self._items.values()), key=lambda i: i.created_at)

    def claim_batch(self, batch_size: int, now: datetime) -> List[OutboxItem]:
        with self._lock:
            due = sorted(
                (item for item in self._items.values() if item.is_claimable(now)),
                key=lambda item: item.created_at,
            )[:batch_size]
            for item in due:
                item.status = OutboxStatus.PROCESSING
                item.updated_at = now
            return [replace(item) for item in due]

    def recover_stuck(self, cutoff: datetime, now: datetime) -> int:
        recovered = 0
        with self._lock:
            for item in self._items.values():
                if item.status is OutboxStatus.PROCESSING and item.updated_at < cutoff:
                    item.status = OutboxStatus.PENDING
                    item.updated_at = now
                    recovered += 1
        return recovered

    def mark_delivered(self, item_id: str, now: datetime) -> None:
        with self._lock:
            item = self._items[item_id]
            item.status = OutboxStatus.DELIVERED
            item.processed_at = now
            item.updated_at = now
            item.last_error = None

    def mark_for_retry(
        self, item_id: str, retry_count: int, next_retry_at: datetime, last_error: str, now: datetime
    ) -> None:
        with self._lock:
            item = self._items[item_id]
            item.status = OutboxStatus.PENDING
            item.retry_count = retry_count
            item.next_retry_at = next_retry_at
            item.last_error = last_error[:500]
            item.updated_at = now

    def mark_dead_letter(self, item_id: str, retry_count: int, last_error: str, now: datetime) -> None:
        with self._lock:
            item = self._items[item_id]
            item.status = OutboxStatus.DEAD_LETTER
            item.retry_count = retry_count
            item.last_error = last_error[:500]
            item.updated_at = now

    def delete_delivered_before(self, cutoff: datetime) -> int:
        with self._lock:
            doomed = [
                item_id
                for item_id, item in self._items.items()
                if item.status is OutboxStatus.DELIVERED
                and item.processed_at is not None
                and item.processed_at < cutoff
            ]
            for item_id in doomed:
                del self._items[item_id]
        return len(doomed)

    def count_by_status(self, day_start: datetime) -> OutboxCounts:
        counts = OutboxCounts()
        with self._lock:
            for item in self._items.values():
                if item.status is OutboxStatus.PENDING:
                    counts.pending += 1
                elif item.status is OutboxStatus.PROCESSING:
                    counts.processing += 1
                elif item.status is OutboxStatus.DEAD_LETTER:
                    counts.dead_letter += 1
                elif item.processed_at is not None and item.processed_at >= day_start:
                    counts.delivered_today += 1
        return counts
