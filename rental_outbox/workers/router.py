from typing import Any, Dict, Mapping, Optional, Protocol

from rental_outbox.config.settings import Settings
from rental_outbox.domain.models.events import EventKind, OutboxItem
from rental_outbox.handlers.booking_cancelled import BookingCancelledHandler
from rental_outbox.handlers.booking_created import BookingCreatedHandler
from rental_outbox.handlers.booking_status_changed import BookingStatusChangedHandler
from rental_outbox.services.notifications import NotificationService
from rental_outbox.utils.logging import configure_logging


class EventHandler(Protocol):
    def handle_event(self, payload: Dict[str, Any], outbox_item_id: str) -> None: ...


class EventRouter:
    """Explicit EventKind -> handler table.

    Handlers must be idempotent: delivery is at-least-once, so the same item
    may reach its handler again after a retry or a stuck-item recovery.
    """

    def __init__(self, handlers: Mapping[EventKind, EventHandler]):
        self._handlers: Dict[EventKind, EventHandler] = dict(handlers)
        self.log = configure_logging("event_router")

    def resolve(self, event_kind: str) -> Optional[EventHandler]:
        kind = EventKind.parse(event_kind)
        if kind is None:
            return None
        return self._handlers.get(kind)

    def dispatch(self, item: OutboxItem) -> bool:
        """Run the item's handler. False means no handler knows this kind; handler errors propagate."""
        handler = self.resolve(item.event_kind)
        if handler is None:
            self.log.warning(
                "Unknown event kind",
                extra={"event_kind": item.event_kind, "event_id": item.id, "aggregate_id": item.aggregate_id},
            )
            return False
        handler.handle_event(item.payload, item.id)
        return True


def build_router(settings: Settings, notifications: NotificationService) -> EventRouter:
    return EventRouter(
        {
            EventKind.BOOKING_CREATED: BookingCreatedHandler(settings, notifications),
            EventKind.BOOKING_STATUS_CHANGED: BookingStatusChangedHandler(settings, notifications),
            EventKind.BOOKING_CANCELLED: BookingCancelledHandler(settings, notifications),
        }
    )
