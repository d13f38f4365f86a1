"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration

DurationValue = Union[str, int, float]

# Delivery calls must give up well before a worker's lease runs out
MAX_DELIVERY_TIMEOUT_SECONDS = 10.0


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class BackoffType(str, Enum):
    """Retry delay strategies supported by the queue."""

    EXPONENTIAL = "exponential"
    FIXED = "fixed"


def _validate_duration(value: DurationValue) -> DurationValue:
    try:
        parse_duration(value)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class QueueConfig(BaseModel):
    """Retry, lease, and retention policy for notification jobs."""

    max_attempts: int = Field(5, ge=1, le=50, description="Delivery attempts per job")
    backoff_type: BackoffType = Field(BackoffType.EXPONENTIAL, description="Retry delay strategy")
    backoff_delay: DurationValue = Field("3s", description="Base retry delay")
    max_backoff: DurationValue = Field("10m", description="Upper bound for any single retry delay")
    lease_timeout: DurationValue = Field(
        "60s", description="How long an active job stays locked to one worker"
    )
    remove_on_complete: bool = Field(True, description="Purge jobs once delivered")

    @field_validator("backoff_delay", "max_backoff", "lease_timeout")
    @classmethod
    def validate_durations(cls, v: DurationValue) -> DurationValue:
        return _validate_duration(v)

    model_config = {"use_enum_values": True}

    @property
    def backoff_delay_seconds(self) -> float:
        return parse_duration(self.backoff_delay)

    @property
    def max_backoff_seconds(self) -> float:
        return parse_duration(self.max_backoff)

    @property
    def lease_timeout_seconds(self) -> float:
        return parse_duration(self.lease_timeout)


class WorkerConfig(BaseModel):
    """Worker pool sizing and polling."""

    concurrency: int = Field(4, ge=1, le=64, description="Independent worker slots")
    poll_interval: DurationValue = Field("2s", description="Idle wait between queue polls")
    batch_size: int = Field(
        25, ge=1, le=1000, description="Max jobs one worker slot drains per poll"
    )
    maintenance_interval: DurationValue = Field(
        "15s", description="Interval for lease recovery and delayed-job promotion"
    )

    @field_validator("poll_interval", "maintenance_interval")
    @classmethod
    def validate_durations(cls, v: DurationValue) -> DurationValue:
        return _validate_duration(v)

    @property
    def poll_interval_seconds(self) -> float:
        return parse_duration(self.poll_interval)

    @property
    def maintenance_interval_seconds(self) -> float:
        return parse_duration(self.maintenance_interval)


class DeliveryConfig(BaseModel):
    """Transactional-email provider settings (credentials come from the environment)."""

    api_url: str = Field(
        "https://api.brevo.com/v3/smtp/email", min_length=1, description="Provider send endpoint"
    )
    timeout: DurationValue = Field("10s", description="Per-request timeout")
    retry_client_errors: bool = Field(
        True,
        description="Retry 400/401/403 responses like transient failures",
    )
    user_agent: str = Field("mailrelay/1.0", min_length=1, description="User-Agent header")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: DurationValue) -> DurationValue:
        _validate_duration(v)
        if parse_duration(v) > MAX_DELIVERY_TIMEOUT_SECONDS:
            raise ValueError(
                f"Delivery timeout must not exceed {MAX_DELIVERY_TIMEOUT_SECONDS:.0f} seconds"
            )
        return v

    @field_validator("api_url", "user_agent")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Field cannot be empty or whitespace-only")
        return stripped

    @property
    def timeout_seconds(self) -> float:
        return parse_duration(self.timeout)


class TemplatesConfig(BaseModel):
    """Where named HTML email bodies are looked up."""

    directory: Optional[str] = Field(
        None, description="Template directory (defaults to the bundled email_templates)"
    )


class TokenConfig(BaseModel):
    """Reset-token policy."""

    lifetime: DurationValue = Field("15m", description="Time a reset secret stays valid")

    @field_validator("lifetime")
    @classmethod
    def validate_lifetime(cls, v: DurationValue) -> DurationValue:
        return _validate_duration(v)

    @property
    def lifetime_seconds(self) -> float:
        return parse_duration(self.lifetime)


class ApplicationConfig(BaseModel):
    """Values substituted into outgoing emails."""

    name: str = Field("Application", min_length=1, description="Product name shown in emails")
    url: str = Field("http://localhost:3000", min_length=1, description="Public web app base URL")

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(LogFormat.KEY_VALUE, description="Log output format (json or key-value)")

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for mailrelay."""

    queue: QueueConfig = Field(default_factory=QueueConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    templates: TemplatesConfig = Field(default_factory=TemplatesConfig)
    tokens: TokenConfig = Field(default_factory=TokenConfig)
    app: ApplicationConfig = Field(default_factory=ApplicationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_lease_covers_delivery(self):
        """An in-flight delivery must never outlive the lease that protects it."""
        if self.queue.lease_timeout_seconds <= self.delivery.timeout_seconds:
            raise ValueError(
                "queue.lease_timeout must be longer than delivery.timeout "
                f"({self.queue.lease_timeout} <= {self.delivery.timeout})"
            )
        return self
