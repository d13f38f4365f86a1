"""Configuration management module for mailrelay."""

from .duration import DurationParseError, humanize_duration, parse_duration
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_app_config
from .models import (
    AppConfig,
    ApplicationConfig,
    BackoffType,
    DeliveryConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    QueueConfig,
    TemplatesConfig,
    TokenConfig,
    WorkerConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "parse_app_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "QueueConfig",
    "WorkerConfig",
    "DeliveryConfig",
    "TemplatesConfig",
    "TokenConfig",
    "ApplicationConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "BackoffType",
    "LogLevel",
    "LogFormat",
    # Durations
    "parse_duration",
    "humanize_duration",
    "DurationParseError",
    # Exceptions
    "ConfigurationError",
]
