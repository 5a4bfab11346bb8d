from typing import Any, Dict

from rental_outbox.domain.models.events import EventKind
from rental_outbox.domain.models.notifications import NotificationKind
from rental_outbox.handlers.base import NotificationHandler, reference_id, require

APPROVED_MESSAGE = "Your booking request has been approved! The owner will contact you shortly."
DECLINED_MESSAGE = "Your booking request has been declined. You can browse other properties."


class BookingStatusChangedHandler(NotificationHandler):
    """Tell the tenant their booking was approved or declined."""

    event_kind = EventKind.BOOKING_STATUS_CHANGED
    log_name = "booking_status_changed_handler"

    def handle_event(self, payload: Dict[str, Any], outbox_item_id: str) -> None:
        tenant_id = payload.get("tenantId")
        if not tenant_id:
            # Guest bookings have no account to notify.
            self.log.info("Booking has no tenant account; skipping", extra={"booking_id": payload.get("bookingId")})
            return

        new_status = require(payload, "newStatus", self.event_kind)
        approved = str(new_status).upper() == "APPROVED"
        kind = NotificationKind.BOOKING_APPROVED if approved else NotificationKind.BOOKING_REJECTED

        result = self.notifications.emit(
            recipient_id=tenant_id,
            kind=kind,
            title="Booking Approved" if approved else "Booking Declined",
            message=APPROVED_MESSAGE if approved else DECLINED_MESSAGE,
            payload={"propertyId": payload.get("roomId"), "ownerId": payload.get("ownerId")},
            reference_id=reference_id("booking_status", outbox_item_id),
        )
        self.check_emit(result, tenant_id, outbox_item_id)
        self.log.info(
            "BOOKING_STATUS_CHANGED notification handled",
            extra={"booking_id": payload.get("bookingId"), "new_status": new_status, "kind": kind.value},
        )
