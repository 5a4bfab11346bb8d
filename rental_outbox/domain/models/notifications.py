import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class NotificationKind(str, Enum):
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_APPROVED = "BOOKING_APPROVED"
    BOOKING_REJECTED = "BOOKING_REJECTED"

    AGENT_PROPERTY_ASSIGNED = "AGENT_PROPERTY_ASSIGNED"
    AGENT_PROPERTY_UNASSIGNED = "AGENT_PROPERTY_UNASSIGNED"
    AGENT_TENANT_ASSIGNED = "AGENT_TENANT_ASSIGNED"
    AGENT_TENANT_UNASSIGNED = "AGENT_TENANT_UNASSIGNED"
    PROPERTY_NOTE_CREATED = "PROPERTY_NOTE_CREATED"


@dataclass
class Notification:
    id: str
    recipient_id: str
    kind: NotificationKind
    title: str
    message: str
    reference_id: str
    created_at: datetime
    payload: Optional[Dict[str, Any]] = None
    is_read: bool = False
    read_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, NotificationKind):
            self.kind = NotificationKind(self.kind)

    @property
    def unique_key(self) -> Tuple[str, str, str]:
        return (self.recipient_id, self.kind.value, self.reference_id)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Notification":
        fields = {name: row[name] for name in cls.__dataclass_fields__ if name in row}
        return cls(**fields)


@dataclass(frozen=True)
class EmitRequest:
    recipient_id: str
    kind: NotificationKind
    title: str
    message: str
    payload: Optional[Dict[str, Any]] = None
    reference_id: Optional[str] = None

    def to_notification(self, now: Optional[datetime] = None) -> Notification:
        return Notification(
            id=str(uuid.uuid4()),
            recipient_id=self.recipient_id,
            kind=self.kind,
            title=self.title,
            message=self.message,
            # Postgres treats NULLs as distinct, so an absent key is stored as ''.
            reference_id=self.reference_id or "",
            created_at=now or datetime.now(timezone.utc),
            payload=dict(self.payload) if self.payload else None,
        )


@dataclass(frozen=True)
class EmitResult:
    """Outcome of an emit call; emit reports failures here instead of raising."""

    notification: Optional[Notification] = None
    created: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.notification is not None

    @classmethod
    def stored(cls, notification: Notification, created: bool) -> "EmitResult":
        return cls(notification=notification, created=created)

    @classmethod
    def failure(cls, error: str) -> "EmitResult":
        return cls(error=error)
