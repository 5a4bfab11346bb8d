from dataclasses import dataclass
from typing import Any, Optional

from rental_outbox.adapters.notifications.memory import InMemoryNotificationStore
from rental_outbox.adapters.queue.memory import InMemoryOutboxStore
from rental_outbox.config.settings import Settings
from rental_outbox.domain.errors import StoreConfigurationError


@dataclass
class Stores:
    outbox: Any
    notifications: Any
    pg_pool: Optional[Any] = None

    def close(self) -> None:
        if self.pg_pool is not None:
            self.pg_pool.close()


def create_stores(settings: Settings) -> Stores:
    backend = settings.store_backend.strip().lower()
    if backend == "inmemory":
        return Stores(outbox=InMemoryOutboxStore(), notifications=InMemoryNotificationStore())
    if backend == "postgres":
        if not settings.database_url:
            raise StoreConfigurationError("DATABASE_URL is required for STORE_BACKEND=postgres")
        from rental_outbox.adapters.notifications.store import PostgresNotificationStore
        from rental_outbox.adapters.postgres.db import PostgresPool
        from rental_outbox.adapters.queue.outbox import PostgresOutboxStore

        pg_pool = PostgresPool(settings.database_url, settings.db_pool_min, settings.db_pool_max)
        return Stores(
            outbox=PostgresOutboxStore(pg_pool),
            notifications=PostgresNotificationStore(pg_pool),
            pg_pool=pg_pool,
        )
    raise StoreConfigurationError(f"unsupported STORE_BACKEND: {settings.store_backend}")
