from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the outbox dispatcher."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = ""
    store_backend: Literal["postgres", "inmemory"] = "postgres"
    worker_name: str = "outbox-dispatcher"
    log_level: str = "INFO"

    db_pool_min: int = Field(1, ge=1)
    db_pool_max: int = Field(5, ge=1)

    poll_interval_seconds: float = Field(5.0, gt=0)
    batch_size: int = Field(50, gt=0)
    processing_timeout_seconds: float = Field(60.0, gt=0)

    max_retries: int = Field(5, ge=0)
    retry_base_delay_seconds: float = Field(60.0, gt=0)
    retry_backoff_factor: float = Field(2.0, ge=1)
    retry_max_delay_seconds: float = Field(256 * 60.0, gt=0)

    cleanup_retention_days: int = Field(7, ge=0)

    # "deliver" marks unknown kinds delivered without running a handler.
    unknown_event_policy: Literal["deliver", "dead_letter"] = "deliver"
    retry_on_emit_failure: bool = False

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "Settings":
        if self.db_pool_min > self.db_pool_max:
            raise ValueError("db_pool_min must not exceed db_pool_max")
        return self
