import argparse
import json
import signal
import threading
from typing import List, Optional

from rental_outbox.adapters.backends import Stores, create_stores
from rental_outbox.config.settings import Settings
from rental_outbox.services.notifications import NotificationService
from rental_outbox.utils.logging import configure_logging, set_default_level
from rental_outbox.workers.dispatcher import OutboxDispatcher
from rental_outbox.workers.health import build_health_report
from rental_outbox.workers.router import build_router

SHUTDOWN_GRACE_SECONDS = 30.0


def build_dispatcher(settings: Settings, stores: Stores) -> OutboxDispatcher:
    notifications = NotificationService(stores.notifications)
    router = build_router(settings, notifications)
    return OutboxDispatcher(settings, stores.outbox, router)


def run_worker(dispatcher: OutboxDispatcher, log) -> None:
    shutdown = threading.Event()

    def _request_shutdown(signum, _frame):
        log.info("Shutdown requested", extra={"signal": signal.Signals(signum).name})
        shutdown.set()

    signal.signal(signal.SIGTERM, _request_shutdown)
    signal.signal(signal.SIGINT, _request_shutdown)

    dispatcher.start()
    shutdown.wait()
    dispatcher.stop()
    if not dispatcher.join(SHUTDOWN_GRACE_SECONDS):
        log.warning("In-flight outbox cycle still running at exit", extra={"grace_seconds": SHUTDOWN_GRACE_SECONDS})


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rental-outbox", description="Transactional outbox dispatcher")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("worker", help="poll and dispatch outbox items until signalled")
    cleanup = sub.add_parser("cleanup", help="delete delivered items past the retention window")
    cleanup.add_argument("--retention-days", type=int, default=None)
    sub.add_parser("stats", help="print the detailed health report as JSON")
    sub.add_parser("init-db", help="create the outbox and notification tables")
    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "worker"
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = Settings()
    set_default_level(settings.log_level)
    log = configure_logging(f"{settings.worker_name}.runner")
    log.info("Starting outbox command", extra={"command": args.command, "backend": settings.store_backend})

    stores = create_stores(settings)
    try:
        if args.command == "init-db":
            from rental_outbox.adapters.postgres.schema import ensure_schema

            if stores.pg_pool is None:
                log.warning("init-db needs STORE_BACKEND=postgres; nothing to do")
                return 1
            with stores.pg_pool.connection() as conn:
                ensure_schema(conn)
            log.info("Outbox schema ready")
            return 0

        dispatcher = build_dispatcher(settings, stores)
        if args.command == "cleanup":
            deleted = dispatcher.cleanup(args.retention_days)
            print(deleted)
        elif args.command == "stats":
            print(json.dumps(build_health_report(dispatcher), indent=2, default=str))
        else:
            run_worker(dispatcher, log)
        return 0
    finally:
        stores.close()


if __name__ == "__main__":
    raise SystemExit(main())
