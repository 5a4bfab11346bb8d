from datetime import datetime
from typing import Any, Dict

from rental_outbox.domain.models.events import EventKind
from rental_outbox.domain.models.notifications import NotificationKind
from rental_outbox.handlers.base import NotificationHandler, reference_id, require


def _format_move_in(value: Any) -> str:
    if not value:
        return "to be confirmed"
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return str(value)


class BookingCreatedHandler(NotificationHandler):
    """Tell the property owner a new booking request arrived."""

    event_kind = EventKind.BOOKING_CREATED
    log_name = "booking_created_handler"

    def handle_event(self, payload: Dict[str, Any], outbox_item_id: str) -> None:
        owner_id = require(payload, "ownerId", self.event_kind)
        tenant_name = payload.get("tenantName") or "A tenant"
        room_title = payload.get("roomTitle") or "your property"
        room_city = payload.get("roomCity") or "an unlisted city"
        move_in = _format_move_in(payload.get("moveInDate"))

        result = self.notifications.emit(
            recipient_id=owner_id,
            kind=NotificationKind.BOOKING_CREATED,
            title="New Booking Request",
            message=f'{tenant_name} has requested to book "{room_title}" in {room_city} with move-in date {move_in}.',
            payload={
                "triggeredBy": payload.get("tenantId"),
                "triggeredByName": tenant_name,
                "triggeredByRole": "TENANT",
                "propertyId": payload.get("roomId"),
                "propertyTitle": payload.get("roomTitle"),
                "propertyCity": payload.get("roomCity"),
                "ownerId": owner_id,
                "ownerName": payload.get("ownerName"),
            },
            reference_id=reference_id("booking_created", outbox_item_id),
        )
        self.check_emit(result, owner_id, outbox_item_id)
        self.log.info(
            "BOOKING_CREATED notification handled",
            extra={"booking_id": payload.get("bookingId"), "owner_id": owner_id, "emitted": result.ok},
        )
