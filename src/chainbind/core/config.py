"""Runtime configuration using Pydantic BaseSettings."""

import logging
from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYNC_TIMEOUT_SECONDS = 120.0
DEFAULT_POLL_INTERVAL_SECONDS = 0.5
DEFAULT_MAX_POLL_INTERVAL_SECONDS = 4.0


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application Environment
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # JSON-RPC endpoint used by provider_from_settings()
    rpc_url: str = Field(default="http://127.0.0.1:8545", alias="CHAINBIND_RPC_URL")
    network_id: Optional[str] = Field(default=None, alias="CHAINBIND_NETWORK_ID")

    # Transaction synchronization
    sync_timeout_seconds: float = Field(
        default=DEFAULT_SYNC_TIMEOUT_SECONDS, alias="CHAINBIND_SYNC_TIMEOUT_SECONDS"
    )
    poll_interval_seconds: float = Field(
        default=DEFAULT_POLL_INTERVAL_SECONDS, alias="CHAINBIND_POLL_INTERVAL_SECONDS"
    )
    max_poll_interval_seconds: float = Field(
        default=DEFAULT_MAX_POLL_INTERVAL_SECONDS, alias="CHAINBIND_MAX_POLL_INTERVAL_SECONDS"
    )

    @model_validator(mode="after")
    def validate_sync_config(self) -> "Settings":
        """Reject timing values the receipt poller cannot work with.

        Fails fast with one message listing every problem.
        """
        problems = []

        if self.sync_timeout_seconds <= 0:
            problems.append("CHAINBIND_SYNC_TIMEOUT_SECONDS must be positive")
        if self.poll_interval_seconds <= 0:
            problems.append("CHAINBIND_POLL_INTERVAL_SECONDS must be positive")
        if self.max_poll_interval_seconds < self.poll_interval_seconds:
            problems.append(
                "CHAINBIND_MAX_POLL_INTERVAL_SECONDS must not be smaller than "
                "CHAINBIND_POLL_INTERVAL_SECONDS"
            )

        if problems:
            raise ValueError(
                "Invalid synchronization settings:\n" + "\n".join(f"  - {p}" for p in problems)
            )

        return self


@dataclass(frozen=True)
class SyncConfig:
    """Synchronization parameters held by each abstraction.

    Attributes:
        timeout: Seconds to wait for a final receipt (default: 120)
        poll_interval: First delay between receipt lookups, in seconds
        max_poll_interval: Upper bound for the growing poll delay, in seconds
        backoff: Multiplier applied to the poll delay after each empty lookup
    """

    timeout: float = DEFAULT_SYNC_TIMEOUT_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    max_poll_interval: float = DEFAULT_MAX_POLL_INTERVAL_SECONDS
    backoff: float = 1.5

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.max_poll_interval < self.poll_interval:
            raise ValueError("max_poll_interval must be >= poll_interval")
        if self.backoff < 1.0:
            raise ValueError("backoff must be >= 1.0")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncConfig":
        return cls(
            timeout=settings.sync_timeout_seconds,
            poll_interval=settings.poll_interval_seconds,
            max_poll_interval=settings.max_poll_interval_seconds,
        )


def configure_logging(settings: Settings) -> None:
    """Configure structlog based on application environment.

    - Production: JSON output for log aggregation
    - Development: Console output for human readability
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if settings.app_env == "production":
        # JSON output for production (log aggregation)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        # Console output for development (human-readable)
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
