from typing import Any, Dict, Optional

from rental_outbox.config.settings import Settings
from rental_outbox.domain.errors import InvalidPayloadError, NotificationNotDeliveredError
from rental_outbox.domain.models.events import EventKind
from rental_outbox.domain.models.notifications import EmitResult
from rental_outbox.services.notifications import NotificationService
from rental_outbox.utils.logging import configure_logging


def reference_id(prefix: str, outbox_item_id: str, recipient_id: Optional[str] = None) -> str:
    """Deterministic idempotency key for notifications caused by one outbox item.

    Fan-out handlers salt with the recipient so each recipient gets its own key.
    """
    if recipient_id:
        return f"{prefix}_{outbox_item_id}_{recipient_id}"
    return f"{prefix}_{outbox_item_id}"


def require(payload: Dict[str, Any], key: str, event_kind: EventKind) -> Any:
    value = payload.get(key)
    if value is None or value == "":
        raise InvalidPayloadError(event_kind.value, key)
    return value


class NotificationHandler:
    """Base for handlers whose side effect is an idempotent notification emit."""

    event_kind: EventKind
    log_name: str

    def __init__(self, settings: Settings, notifications: NotificationService):
        self.settings = settings
        self.notifications = notifications
        self.log = configure_logging(self.log_name)

    def handle_event(self, payload: Dict[str, Any], outbox_item_id: str) -> None:
        raise NotImplementedError

    def check_emit(self, result: EmitResult, recipient_id: str, outbox_item_id: str) -> None:
        if result.ok:
            return
        # emit already logged the store error; this records which item lost its notification.
        self.log.warning(
            "Notification emit failed",
            extra={
                "event_kind": self.event_kind.value,
                "outbox_item_id": outbox_item_id,
                "recipient_id": recipient_id,
                "retrying": self.settings.retry_on_emit_failure,
            },
        )
        if self.settings.retry_on_emit_failure:
            raise NotificationNotDeliveredError(recipient_id, self.event_kind.value, result.error or "unknown")
