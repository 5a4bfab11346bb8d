from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from rental_outbox.adapters.notifications.memory import InMemoryNotificationStore
from rental_outbox.adapters.queue.memory import InMemoryOutboxStore
from rental_outbox.config.settings import Settings
from rental_outbox.domain.models.events import AggregateType, EventKind, OutboxItem, new_outbox_item
from rental_outbox.services.notifications import NotificationService
from rental_outbox.workers.dispatcher import OutboxDispatcher
from rental_outbox.workers.router import build_router

T0 = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def booking_created_payload(**overrides) -> dict:
    payload = {
        "bookingId": "bk1",
        "roomId": "room-7",
        "roomTitle": "Sunny studio",
        "roomCity": "Pune",
        "ownerId": "u1",
        "ownerName": "Asha",
        "tenantId": "t9",
        "tenantName": "Ravi",
        "tenantEmail": "ravi@example.com",
        "tenantPhone": "+910000000000",
        "moveInDate": "2026-04-01T00:00:00.000Z",
        "message": None,
        "status": "PENDING",
        "createdAt": "2026-03-02T09:29:00.000Z",
    }
    payload.update(overrides)
    return payload


def make_item(
    item_id: str,
    event_kind=EventKind.BOOKING_CREATED,
    aggregate_id: str = "bk1",
    payload: dict | None = None,
    created_at: datetime = T0,
    max_retries: int | None = None,
) -> OutboxItem:
    return new_outbox_item(
        AggregateType.BOOKING,
        aggregate_id,
        event_kind,
        booking_created_payload() if payload is None else payload,
        max_retries=max_retries,
        now=created_at,
        item_id=item_id,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        store_backend="inmemory",
        poll_interval_seconds=0.05,
        batch_size=50,
        processing_timeout_seconds=60,
        max_retries=3,
        retry_base_delay_seconds=60,
        retry_backoff_factor=2,
        retry_max_delay_seconds=600,
    )


@pytest.fixture
def outbox_store() -> InMemoryOutboxStore:
    return InMemoryOutboxStore()


@pytest.fixture
def notification_store() -> InMemoryNotificationStore:
    return InMemoryNotificationStore()


@pytest.fixture
def notifications(notification_store, clock) -> NotificationService:
    return NotificationService(notification_store, clock=clock)


@pytest.fixture
def dispatcher(settings, outbox_store, notifications, clock) -> OutboxDispatcher:
    return OutboxDispatcher(settings, outbox_store, build_router(settings, notifications), clock=clock)
