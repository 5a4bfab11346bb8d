from __future__ import annotations

import pytest

from conftest import T0, booking_created_payload
from rental_outbox.adapters.notifications.memory import InMemoryNotificationStore
from rental_outbox.domain.models.notifications import EmitRequest, NotificationKind
from rental_outbox.handlers.base import reference_id
from rental_outbox.handlers.booking_created import BookingCreatedHandler
from rental_outbox.services.notifications import NotificationService


class FlakyRecipientStore(InMemoryNotificationStore):
    def __init__(self, broken_recipient: str) -> None:
        super().__init__()
        self.broken_recipient = broken_recipient

    def insert_or_get(self, notification):
        if notification.recipient_id == self.broken_recipient:
            raise ConnectionError("write timeout")
        return super().insert_or_get(notification)


class DownStore:
    def insert_or_get(self, notification):
        raise ConnectionError("connection refused")

    def count_unread(self, recipient_id):
        raise ConnectionError("connection refused")

    def list_for_recipient(self, recipient_id, include_read=True, page=1, page_size=20):
        raise ConnectionError("connection refused")


def test_emit_is_idempotent_and_keeps_first_content(notifications, notification_store) -> None:
    first = notifications.emit("u1", NotificationKind.BOOKING_CREATED, "New Booking Request", "first", reference_id="booking_created_e1")
    second = notifications.emit("u1", NotificationKind.BOOKING_CREATED, "New Booking Request", "second", reference_id="booking_created_e1")

    assert first.ok and first.created
    assert second.ok and not second.created
    assert second.notification.id == first.notification.id
    assert second.notification.message == "first"
    assert len(notification_store.all()) == 1


def test_distinct_kind_or_reference_creates_new_rows(notifications, notification_store) -> None:
    notifications.emit("u1", NotificationKind.BOOKING_APPROVED, "t", "m", reference_id="booking_status_e1")
    notifications.emit("u1", NotificationKind.BOOKING_REJECTED, "t", "m", reference_id="booking_status_e1")
    notifications.emit("u1", NotificationKind.BOOKING_REJECTED, "t", "m", reference_id="booking_status_e2")

    assert len(notification_store.all()) == 3


def test_emit_never_raises(clock) -> None:
    service = NotificationService(DownStore(), clock=clock)

    result = service.emit("u1", NotificationKind.BOOKING_CREATED, "t", "m", reference_id="r1")

    assert not result.ok
    assert result.notification is None
    assert result.error == "connection refused"
    assert service.unread_count("u1") == 0
    assert service.list_for_recipient("u1") == []


def test_emit_batch_isolates_failures(clock) -> None:
    store = FlakyRecipientStore(broken_recipient="u2")
    service = NotificationService(store, clock=clock)
    requests = [
        EmitRequest(recipient, NotificationKind.BOOKING_REJECTED, "Booking Cancelled", "m", reference_id=reference_id("booking_cancelled", "e1", recipient))
        for recipient in ("u1", "u2", "u3")
    ]

    results = service.emit_batch(requests)

    assert [result.ok for result in results] == [True, False, True]
    assert sorted(n.reference_id for n in store.all()) == ["booking_cancelled_e1_u1", "booking_cancelled_e1_u3"]


def test_handler_twice_yields_one_notification(settings, notifications, notification_store, clock) -> None:
    handler = BookingCreatedHandler(settings, notifications)
    handler.handle_event(booking_created_payload(), "e1")
    clock.advance(minutes=5)
    handler.handle_event(booking_created_payload(tenantName="Someone else"), "e1")

    stored = notification_store.all()
    assert len(stored) == 1
    assert stored[0].created_at == T0
    assert stored[0].message.startswith("Ravi has requested")


def test_mark_as_read_checks_owner_and_is_idempotent(notifications, clock) -> None:
    created = notifications.emit("u1", NotificationKind.BOOKING_CREATED, "t", "m", reference_id="r1").notification

    assert notifications.mark_as_read(created.id, "someone-else") is None
    assert notifications.unread_count("u1") == 1

    read = notifications.mark_as_read(created.id, "u1")
    clock.advance(minutes=1)
    again = notifications.mark_as_read(created.id, "u1")

    assert read.is_read and read.read_at == T0
    assert again.read_at == T0
    assert notifications.unread_count("u1") == 0


def test_mark_all_as_read(notifications) -> None:
    for ref in ("r1", "r2", "r3"):
        notifications.emit("u1", NotificationKind.BOOKING_CREATED, "t", "m", reference_id=ref)
    notifications.emit("u2", NotificationKind.BOOKING_CREATED, "t", "m", reference_id="r1")

    assert notifications.mark_all_as_read("u1") == 3
    assert notifications.unread_count("u1") == 0
    assert notifications.unread_count("u2") == 1


def test_missing_reference_id_is_stored_as_empty_key(notifications) -> None:
    first = notifications.emit("u1", NotificationKind.PROPERTY_NOTE_CREATED, "t", "one")
    second = notifications.emit("u1", NotificationKind.PROPERTY_NOTE_CREATED, "t", "two")

    assert first.notification.reference_id == ""
    assert second.notification.id == first.notification.id


def test_booking_created_needs_only_the_owner(settings, notifications, notification_store) -> None:
    handler = BookingCreatedHandler(settings, notifications)

    handler.handle_event({"ownerId": "u1", "bookingId": "bk1", "tenantName": "Ravi"}, "e1")

    stored = notification_store.all()
    assert len(stored) == 1
    assert stored[0].recipient_id == "u1"
    assert stored[0].message == 'Ravi has requested to book "your property" in an unlisted city with move-in date to be confirmed.'


def test_list_for_recipient_is_newest_first(notifications, clock) -> None:
    for ref in ("r1", "r2", "r3"):
        notifications.emit("u1", NotificationKind.BOOKING_CREATED, "t", ref, reference_id=ref)
        clock.advance(minutes=1)
    notifications.emit("u2", NotificationKind.BOOKING_CREATED, "t", "other", reference_id="r1")

    listed = notifications.list_for_recipient("u1")

    assert [n.reference_id for n in listed] == ["r3", "r2", "r1"]


def test_list_for_recipient_filters_read_and_pages(notifications, clock) -> None:
    created = []
    for ref in ("r1", "r2", "r3", "r4", "r5"):
        created.append(notifications.emit("u1", NotificationKind.BOOKING_CREATED, "t", ref, reference_id=ref).notification)
        clock.advance(minutes=1)
    notifications.mark_as_read(created[4].id, "u1")

    unread = notifications.list_for_recipient("u1", include_read=False)
    first_page = notifications.list_for_recipient("u1", page=1, page_size=2)
    last_page = notifications.list_for_recipient("u1", page=3, page_size=2)

    assert [n.reference_id for n in unread] == ["r4", "r3", "r2", "r1"]
    assert [n.reference_id for n in first_page] == ["r5", "r4"]
    assert [n.reference_id for n in last_page] == ["r1"]
    assert notifications.list_for_recipient("u1", page=4, page_size=2) == []


def test_list_for_recipient_rejects_bad_paging(notifications) -> None:
    with pytest.raises(ValueError):
        notifications.list_for_recipient("u1", page=0)
    with pytest.raises(ValueError):
        notifications.list_for_recipient("u1", page_size=0)
