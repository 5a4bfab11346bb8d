from __future__ import annotations

import pytest
from pydantic import ValidationError

from rental_outbox.adapters.backends import create_stores
from rental_outbox.adapters.notifications.memory import InMemoryNotificationStore
from rental_outbox.adapters.queue.memory import InMemoryOutboxStore
from rental_outbox.config.settings import Settings
from rental_outbox.domain.errors import StoreConfigurationError
from rental_outbox.domain.retry import RetryPolicy


def test_defaults(monkeypatch) -> None:
    for name in ("POLL_INTERVAL_SECONDS", "BATCH_SIZE", "MAX_RETRIES", "UNKNOWN_EVENT_POLICY"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.poll_interval_seconds == 5.0
    assert settings.batch_size == 50
    assert settings.processing_timeout_seconds == 60.0
    assert settings.max_retries == 5
    assert settings.cleanup_retention_days == 7
    assert settings.unknown_event_policy == "deliver"
    assert settings.retry_on_emit_failure is False


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("BATCH_SIZE", "10")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "0.5")
    monkeypatch.setenv("RETRY_ON_EMIT_FAILURE", "true")
    monkeypatch.setenv("UNKNOWN_EVENT_POLICY", "dead_letter")

    settings = Settings(_env_file=None)

    assert settings.batch_size == 10
    assert settings.poll_interval_seconds == 0.5
    assert settings.retry_on_emit_failure is True
    assert settings.unknown_event_policy == "dead_letter"


@pytest.mark.parametrize(
    "overrides",
    [
        {"batch_size": 0},
        {"poll_interval_seconds": 0},
        {"max_retries": -1},
        {"unknown_event_policy": "ignore"},
        {"db_pool_min": 6, "db_pool_max": 5},
    ],
)
def test_invalid_values_rejected(overrides) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_equal_pool_bounds_accepted(monkeypatch) -> None:
    monkeypatch.setenv("DB_POOL_MIN", "3")
    monkeypatch.setenv("DB_POOL_MAX", "3")

    settings = Settings(_env_file=None)

    assert (settings.db_pool_min, settings.db_pool_max) == (3, 3)


def test_retry_policy_from_settings() -> None:
    policy = RetryPolicy.from_settings(Settings(_env_file=None, max_retries=2, retry_base_delay_seconds=5))

    assert policy.max_retries == 2
    assert policy.backoff(3).total_seconds() == 20


def test_inmemory_backend() -> None:
    stores = create_stores(Settings(_env_file=None, store_backend="inmemory"))

    assert isinstance(stores.outbox, InMemoryOutboxStore)
    assert isinstance(stores.notifications, InMemoryNotificationStore)
    assert stores.pg_pool is None
    stores.close()


def test_postgres_backend_requires_dsn() -> None:
    with pytest.raises(StoreConfigurationError, match="DATABASE_URL"):
        create_stores(Settings(_env_file=None, store_backend="postgres", database_url=""))
