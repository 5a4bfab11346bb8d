from typing import Any, Dict

from rental_outbox.domain.models.events import EventKind
from rental_outbox.domain.models.notifications import NotificationKind
from rental_outbox.handlers.base import NotificationHandler, reference_id, require


class BookingCancelledHandler(NotificationHandler):
    """Tell the owner the tenant cancelled; a tenant-initiated rejection."""

    event_kind = EventKind.BOOKING_CANCELLED
    log_name = "booking_cancelled_handler"

    def handle_event(self, payload: Dict[str, Any], outbox_item_id: str) -> None:
        owner_id = require(payload, "ownerId", self.event_kind)

        result = self.notifications.emit(
            recipient_id=owner_id,
            kind=NotificationKind.BOOKING_REJECTED,
            title="Booking Cancelled",
            message="A booking for your property has been cancelled by the tenant.",
            payload={"propertyId": payload.get("roomId"), "ownerId": owner_id},
            reference_id=reference_id("booking_cancelled", outbox_item_id),
        )
        self.check_emit(result, owner_id, outbox_item_id)
        self.log.info("BOOKING_CANCELLED notification handled", extra={"booking_id": payload.get("bookingId")})
