from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from rental_outbox.config.settings import Settings
from rental_outbox.domain.models.events import OutboxItem, truncate_error


@dataclass(frozen=True)
class RetryDecision:
    dead_letter: bool
    retry_count: int
    last_error: str
    next_retry_at: Optional[datetime] = None


class RetryPolicy:
    """Exponential backoff with a ceiling, then dead-letter.

    Retry n (n >= 1) waits ``base * factor ** (n - 1)`` seconds, capped at
    ``max_delay_seconds``. With the defaults (60s, x2, 5 retries) the schedule
    is 1, 2, 4, 8 and 16 minutes; the sixth failure dead-letters the item.
    """

    def __init__(
        self,
        max_retries: int = 5,
        base_delay_seconds: float = 60.0,
        backoff_factor: float = 2.0,
        max_delay_seconds: float = 256 * 60.0,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay_seconds <= 0 or max_delay_seconds <= 0:
            raise ValueError("retry delays must be positive")
        if backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.backoff_factor = backoff_factor
        self.max_delay_seconds = max_delay_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            base_delay_seconds=settings.retry_base_delay_seconds,
            backoff_factor=settings.retry_backoff_factor,
            max_delay_seconds=settings.retry_max_delay_seconds,
        )

    def backoff(self, retry_count: int) -> timedelta:
        exponent = max(retry_count - 1, 0)
        try:
            delay = self.base_delay_seconds * (self.backoff_factor ** exponent)
        except OverflowError:
            delay = self.max_delay_seconds
        return timedelta(seconds=min(delay, self.max_delay_seconds))

    def limit_for(self, item: OutboxItem) -> int:
        return self.max_retries if item.max_retries is None else item.max_retries

    def decide(self, item: OutboxItem, error: BaseException, now: datetime) -> RetryDecision:
        retry_count = item.retry_count + 1
        last_error = truncate_error(error)
        if retry_count > self.limit_for(item):
            return RetryDecision(dead_letter=True, retry_count=retry_count, last_error=last_error)
        return RetryDecision(
            dead_letter=False,
            retry_count=retry_count,
            last_error=last_error,
            next_retry_at=now + self.backoff(retry_count),
        )
