"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/mailrelay.db"
DEFAULT_SENDER_EMAIL = "no-reply@example.com"
DEFAULT_SENDER_NAME = "Application"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EnvironmentConfig:
    """Secrets and deployment values taken from the process environment."""

    def __init__(
        self,
        brevo_api_key: Optional[str] = None,
        sender_email: Optional[str] = None,
        sender_name: Optional[str] = None,
        database_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.brevo_api_key = brevo_api_key or ""
        self.sender_email = sender_email or DEFAULT_SENDER_EMAIL
        self.sender_name = sender_name or DEFAULT_SENDER_NAME
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.log_level = log_level
        self.environment = environment or "local"

    @property
    def delivery_configured(self) -> bool:
        """Whether an API key is available for the email provider."""
        return bool(self.brevo_api_key)


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    All variables are optional; a missing BREVO_API_KEY is allowed so the
    producer side can run without delivery credentials (jobs then fail at
    delivery time and are retained for operators).

    Environment variables:
    - BREVO_API_KEY: Provider API key
    - BREVO_SENDER_EMAIL: From address (default: no-reply@example.com)
    - BREVO_SENDER_NAME: From display name (default: Application)
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./data/mailrelay.db)
    - LOG_LEVEL: Override log level
    - ENVIRONMENT: Environment label for logs (default: local)

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If any provided variable is invalid
    """
    errors = []

    api_key = os.getenv("BREVO_API_KEY")
    sender_email = os.getenv("BREVO_SENDER_EMAIL")
    sender_name = os.getenv("BREVO_SENDER_NAME")
    database_url = os.getenv("DATABASE_URL")
    log_level = os.getenv("LOG_LEVEL")
    environment = os.getenv("ENVIRONMENT")

    if sender_email:
        try:
            sender_email = validate_email(sender_email, check_deliverability=False).normalized
        except EmailNotValidError as e:
            errors.append(f"Invalid BREVO_SENDER_EMAIL: '{sender_email}' - {e}")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if database_url is not None and not database_url.strip():
        errors.append("DATABASE_URL is set but empty")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Check that BREVO_SENDER_EMAIL is a valid address",
            ],
        )

    return EnvironmentConfig(
        brevo_api_key=api_key,
        sender_email=sender_email,
        sender_name=sender_name,
        database_url=database_url,
        log_level=log_level.upper() if log_level else None,
        environment=environment,
    )
