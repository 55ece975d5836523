"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class DatabaseConfig(BaseSettings):
    """Database connection configuration.

    When ``database_url`` is unset the in-memory notification store is used.
    """

    model_config = {"env_prefix": "HERALD_DB_"}

    database_url: str | None = None
    echo: bool = False
    pool_size: int = 5


class NotificationConfig(BaseSettings):
    """Lifecycle engine configuration."""

    model_config = {"env_prefix": "HERALD_NOTIFICATION_"}

    templates_dir: str = "templates"
    send_on_create: bool = True
    dispatch_timeout_seconds: float = 60.0
    stale_claim_after_seconds: float = 600.0
    contact_email: str = "hello@example.com"


class SchedulerConfig(BaseSettings):
    """Pending-notification poller configuration."""

    model_config = {"env_prefix": "HERALD_SCHEDULER_"}

    enabled: bool = False
    poll_interval_seconds: float = 300.0
    max_concurrency: int = 10


class QueueConfig(BaseSettings):
    """In-process dispatch queue configuration."""

    model_config = {"env_prefix": "HERALD_QUEUE_"}

    enabled: bool = False
    workers: int = 2


class SMTPConfig(BaseSettings):
    """SMTP transport for the email adapter."""

    model_config = {"env_prefix": "HERALD_SMTP_"}

    host: str | None = None
    port: int = 587
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    timeout_seconds: float = 10.0
    from_email: str = "no-reply@example.com"


class SMSConfig(BaseSettings):
    """HTTP SMS gateway for the SMS adapter."""

    model_config = {"env_prefix": "HERALD_SMS_"}

    gateway_url: str | None = None
    api_key: str | None = None
    sender_id: str = "Herald"
    timeout_seconds: float = 10.0


class PushConfig(BaseSettings):
    """HTTP push gateway for the push adapter."""

    model_config = {"env_prefix": "HERALD_PUSH_"}

    gateway_url: str | None = None
    api_key: str | None = None
    timeout_seconds: float = 10.0


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "HERALD_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    notification: NotificationConfig = Field(default_factory=NotificationConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    smtp: SMTPConfig = Field(default_factory=SMTPConfig)
    sms: SMSConfig = Field(default_factory=SMSConfig)
    push: PushConfig = Field(default_factory=PushConfig)
