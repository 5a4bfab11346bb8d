class OutboxError(Exception):
    """Base class for dispatcher errors."""


class StoreConfigurationError(OutboxError):
    pass


class InvalidPayloadError(OutboxError):
    def __init__(self, event_kind: str, key: str):
        super().__init__(f"{event_kind} payload missing required key '{key}'")
        self.event_kind = event_kind
        self.key = key


class NotificationNotDeliveredError(OutboxError):
    def __init__(self, recipient_id: str, kind: str, reason: str):
        super().__init__(f"notification {kind} for {recipient_id} not stored: {reason}")
        self.recipient_id = recipient_id
        self.kind = kind
        self.reason = reason


class UnknownEventKindError(OutboxError):
    def __init__(self, event_kind: str):
        super().__init__(f"Unknown event kind: {event_kind}")
        self.event_kind = event_kind
