from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from rental_outbox.domain.models.notifications import (
    EmitRequest,
    EmitResult,
    Notification,
    NotificationKind,
)
from rental_outbox.utils.logging import configure_logging


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class NotificationService:
    """Idempotent, failure-isolated notification writes.

    ``emit`` never raises. Store errors are logged and reported through the
    returned ``EmitResult``; whether that outcome matters is the caller's call.
    A repeated (recipient_id, kind, reference_id) returns the first stored
    row unchanged.
    """

    def __init__(self, store, clock: Callable[[], datetime] = _now_utc):
        self.store = store
        self.clock = clock
        self.log = configure_logging("notification_service")

    def emit(
        self,
        recipient_id: str,
        kind: NotificationKind,
        title: str,
        message: str,
        payload: Optional[Dict[str, Any]] = None,
        reference_id: Optional[str] = None,
    ) -> EmitResult:
        request = EmitRequest(
            recipient_id=recipient_id,
            kind=kind,
            title=title,
            message=message,
            payload=payload,
            reference_id=reference_id,
        )
        return self.emit_request(request)

    def emit_request(self, request: EmitRequest) -> EmitResult:
        try:
            notification, created = self.store.insert_or_get(request.to_notification(self.clock()))
        except Exception as exc:  # noqa: BLE001
            self.log.error(
                "Failed to emit notification",
                extra={
                    "kind": getattr(request.kind, "value", request.kind),
                    "recipient_id": request.recipient_id,
                    "reference_id": request.reference_id,
                    "error": str(exc),
                },
            )
            return EmitResult.failure(str(exc) or exc.__class__.__name__)

        if created:
            self.log.info(
                "Notification persisted",
                extra={"notification_id": notification.id, "kind": notification.kind.value},
            )
        else:
            self.log.info(
                "Duplicate notification ignored",
                extra={"notification_id": notification.id, "reference_id": notification.reference_id},
            )
        return EmitResult.stored(notification, created)

    def emit_batch(self, requests: Sequence[EmitRequest]) -> List[EmitResult]:
        """Emit each request independently; results keep input order."""
        results = [self.emit_request(request) for request in requests]
        succeeded = sum(1 for result in results if result.ok)
        self.log.info("Notification batch complete", extra={"succeeded": succeeded, "total": len(results)})
        return results

    def list_for_recipient(
        self, recipient_id: str, include_read: bool = True, page: int = 1, page_size: int = 20
    ) -> List[Notification]:
        """A recipient's notifications, newest first. Empty on store failure."""
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        try:
            return self.store.list_for_recipient(recipient_id, include_read, page, page_size)
        except Exception as exc:  # noqa: BLE001
            self.log.error("Failed to list notifications", extra={"recipient_id": recipient_id, "error": str(exc)})
            return []

    def mark_as_read(self, notification_id: str, recipient_id: str) -> Optional[Notification]:
        try:
            updated = self.store.mark_as_read(notification_id, recipient_id, self.clock())
        except Exception as exc:  # noqa: BLE001
            self.log.error("Failed to mark notification read", extra={"notification_id": notification_id, "error": str(exc)})
            return None
        if updated is None:
            self.log.warning(
                "Notification not found or not owned by recipient",
                extra={"notification_id": notification_id, "recipient_id": recipient_id},
            )
        return updated

    def mark_all_as_read(self, recipient_id: str) -> int:
        try:
            return self.store.mark_all_as_read(recipient_id, self.clock())
        except Exception as exc:  # noqa: BLE001
            self.log.error("Failed to mark all notifications read", extra={"recipient_id": recipient_id, "error": str(exc)})
            return 0

    def unread_count(self, recipient_id: str) -> int:
        try:
            return self.store.count_unread(recipient_id)
        except Exception as exc:  # noqa: BLE001
            self.log.error("Failed to count unread notifications", extra={"recipient_id": recipient_id, "error": str(exc)})
            return 0
