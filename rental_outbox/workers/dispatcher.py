import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from rental_outbox.config.settings import Settings
from rental_outbox.domain.errors import UnknownEventKindError
from rental_outbox.domain.models.events import OutboxItem, truncate_error
from rental_outbox.domain.retry import RetryPolicy
from rental_outbox.utils.logging import configure_logging
from rental_outbox.workers.metrics import OutboxMetrics
from rental_outbox.workers.router import EventRouter


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class OutboxDispatcher:
    """Polls the outbox, dispatches claimed items and applies retry/dead-letter.

    Each cycle first resets items left PROCESSING longer than the timeout,
    then claims a batch and handles it sequentially in created_at order so
    events for one aggregate are observed in the order they were written.
    Concurrent dispatchers, in this process or others, coordinate only
    through the store's atomic claim.
    """

    def __init__(
        self,
        settings: Settings,
        store,
        router: EventRouter,
        retry_policy: Optional[RetryPolicy] = None,
        metrics: Optional[OutboxMetrics] = None,
        clock: Callable[[], datetime] = _now_utc,
    ):
        self.settings = settings
        self.store = store
        self.router = router
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.metrics = metrics or OutboxMetrics()
        self.clock = clock
        self.log = configure_logging(settings.worker_name)

        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -- scheduling -----------------------------------------------------

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        with self._state_lock:
            if self.is_running:
                self.log.warning("Outbox dispatcher already running")
                return
            previous = self._thread
            if previous is not None and previous.is_alive():
                # A stopped poller may still be inside its last cycle; cycles never overlap.
                self.log.info("Waiting for previous poll cycle to finish before restart")
                previous.join()
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run_loop,
                args=(self._stop_event,),
                name=f"{self.settings.worker_name}-poller",
                daemon=True,
            )
            self._thread.start()
        self.log.info(
            "Outbox dispatcher started",
            extra={
                "poll_interval_seconds": self.settings.poll_interval_seconds,
                "batch_size": self.settings.batch_size,
            },
        )

    def stop(self) -> None:
        """Cancel future cycles; a cycle already running finishes on its own.

        A later ``start`` waits for that cycle before polling again.
        """
        with self._state_lock:
            if self._thread is None:
                return
            self._stop_event.set()
        self.log.info("Outbox dispatcher stopped", extra=self.metrics.snapshot())

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the poller thread to exit; True once it has."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _run_loop(self, stop_event: threading.Event) -> None:
        # First cycle runs immediately to drain any backlog left from before startup.
        self._run_cycle_safely()
        while not stop_event.wait(self.settings.poll_interval_seconds):
            self._run_cycle_safely()

    def _run_cycle_safely(self) -> None:
        try:
            self.run_cycle()
        except Exception:  # noqa: BLE001
            self.metrics.record_processing_error()
            self.log.exception("Outbox poll cycle failed")

    # -- polling --------------------------------------------------------

    def run_cycle(self) -> int:
        """One poll: recover stuck items, claim a batch, process it. Returns the number claimed."""
        now = self.clock()
        self.metrics.record_poll(now)

        self.recover_stuck_items()

        items = self.store.claim_batch(self.settings.batch_size, self.clock())
        if not items:
            self.metrics.record_empty_poll()
            return 0

        self.log.info(
            "Processing outbox batch",
            extra={"count": len(items), "event_kinds": ",".join(sorted({i.event_kind for i in items}))},
        )
        for item in items:
            self.process_item(item)
        return len(items)

    def recover_stuck_items(self) -> int:
        now = self.clock()
        cutoff = now - timedelta(seconds=self.settings.processing_timeout_seconds)
        recovered = self.store.recover_stuck(cutoff, now)
        if recovered:
            self.metrics.record_recovered(recovered)
            self.log.warning("Recovered stuck outbox items", extra={"count": recovered, "cutoff": cutoff.isoformat()})
        return recovered

    def process_item(self, item: OutboxItem) -> None:
        self.metrics.record_event_started(self.clock())
        try:
            handled = self.router.dispatch(item)
        except Exception as exc:  # noqa: BLE001
            self._handle_failure(item, exc)
            return

        if not handled:
            self._handle_unknown(item)
            return

        self.store.mark_delivered(item.id, self.clock())
        self.metrics.record_delivered()
        self.log.info(
            "Outbox item delivered",
            extra={"event_id": item.id, "event_kind": item.event_kind, "aggregate_id": item.aggregate_id},
        )

    def _handle_unknown(self, item: OutboxItem) -> None:
        self.metrics.record_unknown()
        if self.settings.unknown_event_policy == "dead_letter":
            limit = self.retry_policy.limit_for(item)
            self.store.mark_dead_letter(
                item.id, limit + 1, truncate_error(UnknownEventKindError(item.event_kind)), self.clock()
            )
            self.metrics.record_dead_lettered()
            self.log.error(
                "Unknown event kind dead-lettered",
                extra={"event_id": item.id, "event_kind": item.event_kind},
            )
            return

        self.store.mark_delivered(item.id, self.clock())
        self.metrics.record_delivered()
        self.log.warning(
            "Unknown event kind marked delivered without handling",
            extra={"event_id": item.id, "event_kind": item.event_kind},
        )

    def _handle_failure(self, item: OutboxItem, exc: Exception) -> None:
        self.metrics.record_failed()
        now = self.clock()
        decision = self.retry_policy.decide(item, exc, now)

        if decision.dead_letter:
            self.store.mark_dead_letter(item.id, decision.retry_count, decision.last_error, now)
            self.metrics.record_dead_lettered()
            self.log.error(
                "Outbox item dead-lettered (max retries exceeded)",
                extra={
                    "event_id": item.id,
                    "event_kind": item.event_kind,
                    "aggregate_id": item.aggregate_id,
                    "retry_count": decision.retry_count,
                    "max_retries": self.retry_policy.limit_for(item),
                    "last_error": decision.last_error,
                },
            )
            return

        self.store.mark_for_retry(item.id, decision.retry_count, decision.next_retry_at, decision.last_error, now)
        self.log.warning(
            "Outbox item failed, retry scheduled",
            extra={
                "event_id": item.id,
                "event_kind": item.event_kind,
                "retry_count": decision.retry_count,
                "next_retry_at": decision.next_retry_at.isoformat(),
                "error": decision.last_error,
            },
        )

    # -- maintenance and reporting ---------------------------------------

    def cleanup(self, retention_days: Optional[int] = None) -> int:
        """Delete DELIVERED items processed before the retention window. Other states are kept."""
        days = self.settings.cleanup_retention_days if retention_days is None else retention_days
        cutoff = self.clock() - timedelta(days=days)
        deleted = self.store.delete_delivered_before(cutoff)
        if deleted:
            self.log.info("Removed delivered outbox items", extra={"deleted": deleted, "retention_days": days})
        return deleted

    def detailed_stats(self) -> Dict[str, Any]:
        """Counters plus live store counts; on store errors, counters plus an ``error`` field."""
        stats: Dict[str, Any] = self.metrics.snapshot()
        stats.update(
            {
                "is_running": self.is_running,
                "poll_interval_seconds": self.settings.poll_interval_seconds,
                "batch_size": self.settings.batch_size,
            }
        )
        now = self.clock()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        try:
            counts = self.store.count_by_status(day_start)
        except Exception as exc:  # noqa: BLE001
            self.log.error("Failed to read outbox counts", extra={"error": str(exc)})
            stats["error"] = str(exc) or exc.__class__.__name__
            return stats
        stats.update(counts.as_dict())
        return stats

