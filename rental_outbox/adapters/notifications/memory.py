import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from rental_outbox.domain.models.notifications import Notification


class InMemoryNotificationStore:
    """Notifications indexed by their (recipient_id, kind, reference_id) key."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_key: Dict[Tuple[str, str, str], Notification] = {}

    def insert_or_get(self, notification: Notification) -> Tuple[Notification, bool]:
        with self._lock:
            existing = self._by_key.get(notification.unique_key)
            if existing is not None:
                return replace(existing), False
            self._by_key[notification.unique_key] = replace(notification)
            return replace(notification), True

    def get_by_key(self, recipient_id: str, kind: str, reference_id: str) -> Optional[Notification]:
        with self._lock:
            found = self._by_key.get((recipient_id, kind, reference_id))
            return replace(found) if found else None

    def all(self) -> List[Notification]:
        with self._lock:
            return [replace(n) for n in self._by_key.values()]

    def list_for_recipient(
        self, recipient_id: str, include_read: bool = True, page: int = 1, page_size: int = 20
    ) -> List[Notification]:
        with self._lock:
            matching = [
                replace(n)
                for n in self._by_key.values()
                if n.recipient_id == recipient_id and (include_read or not n.is_read)
            ]
        matching.sort(key=lambda n: (n.created_at, n.id), reverse=True)
        start = (page - 1) * page_size
        return matching[start : start + page_size]

    def mark_as_read(self, notification_id: str, recipient_id: str, now: datetime) -> Optional[Notification]:
        with self._lock:
            for notification in self._by_key.values():
                if notification.id == notification_id and notification.recipient_id == recipient_id:
                    if not notification.is_read:
                        notification.is_read = True
                        notification.read_at = now
                    return replace(notification)
        return None

    def mark_all_as_read(self, recipient_id: str, now: datetime) -> int:
        updated = 0
        with self._lock:
            for notification in self._by_key.values():
                if notification.recipient_id == recipient_id and not notification.is_read:
                    notification.is_read = True
                    notification.read_at = now
                    updated += 1
        return updated

    def count_unread(self, recipient_id: str) -> int:
        with self._lock:
            return sum(
                1 for n in self._by_key.values() if n.recipient_id == recipient_id and not n.is_read
            )
