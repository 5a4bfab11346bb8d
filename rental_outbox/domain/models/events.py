import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

LAST_ERROR_MAX_LENGTH = 500


class OutboxStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    DELIVERED = "DELIVERED"
    DEAD_LETTER = "DEAD_LETTER"


class AggregateType(str, Enum):
    BOOKING = "BOOKING"
    PAYMENT = "PAYMENT"
    ASSIGNMENT = "ASSIGNMENT"
    PROPERTY_NOTE = "PROPERTY_NOTE"


class EventKind(str, Enum):
    """Every event kind producers may write. Naming: {AGGREGATE}_{PAST_TENSE_VERB}."""

    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_STATUS_CHANGED = "BOOKING_STATUS_CHANGED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"

    PAYMENT_VERIFIED = "PAYMENT_VERIFIED"
    PAYMENT_FAILED = "PAYMENT_FAILED"

    AGENT_PROPERTY_ASSIGNED = "AGENT_PROPERTY_ASSIGNED"
    AGENT_PROPERTY_UNASSIGNED = "AGENT_PROPERTY_UNASSIGNED"
    AGENT_TENANT_ASSIGNED = "AGENT_TENANT_ASSIGNED"
    AGENT_TENANT_UNASSIGNED = "AGENT_TENANT_UNASSIGNED"

    PROPERTY_NOTE_CREATED = "PROPERTY_NOTE_CREATED"

    @classmethod
    def parse(cls, value: str) -> Optional["EventKind"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class OutboxItem:
    id: str
    aggregate_type: str
    aggregate_id: str
    event_kind: str
    payload: Dict[str, Any]
    status: OutboxStatus
    created_at: datetime
    updated_at: datetime
    retry_count: int = 0
    max_retries: Optional[int] = None
    next_retry_at: Optional[datetime] = None
    last_error: Optional[str] = None
    processed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, OutboxStatus):
            self.status = OutboxStatus(self.status)
        if self.payload is None:
            self.payload = {}

    def is_claimable(self, now: datetime) -> bool:
        if self.status is not OutboxStatus.PENDING:
            return False
        return self.next_retry_at is None or self.next_retry_at <= now

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "OutboxItem":
        fields = {name: row[name] for name in cls.__dataclass_fields__ if name in row}
        return cls(**fields)


def new_outbox_item(
    aggregate_type: str,
    aggregate_id: str,
    event_kind: str,
    payload: Dict[str, Any],
    max_retries: Optional[int] = None,
    now: Optional[datetime] = None,
    item_id: Optional[str] = None,
) -> OutboxItem:
    """Build a PENDING item for a producer to insert inside its own transaction."""
    created = now or datetime.now(timezone.utc)
    return OutboxItem(
        id=item_id or str(uuid.uuid4()),
        aggregate_type=getattr(aggregate_type, "value", aggregate_type),
        aggregate_id=aggregate_id,
        event_kind=getattr(event_kind, "value", event_kind),
        payload=dict(payload),
        status=OutboxStatus.PENDING,
        created_at=created,
        updated_at=created,
        max_retries=max_retries,
    )


@dataclass
class OutboxCounts:
    pending: int = 0
    processing: int = 0
    dead_letter: int = 0
    delivered_today: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "pending_count": self.pending,
            "processing_count": self.processing,
            "dead_letter_count": self.dead_letter,
            "delivered_today": self.delivered_today,
        }


def truncate_error(error: BaseException) -> str:
    message = str(error) or error.__class__.__name__
    return message[:LAST_ERROR_MAX_LENGTH]
