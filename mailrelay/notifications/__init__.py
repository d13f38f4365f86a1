"""Asynchronous templated email notifications.

This module provides both ends of the notification pipeline:
- NotificationProducer: enqueue jobs (welcome, reset, account-created, generic)
- NotificationWorker: claim, render, deliver, and record outcomes
- TemplateRenderer: Jinja2 rendering of ``<name>.html`` templates
- DeliveryClient: provider HTTP client with retryable/fatal error classification
"""

from .delivery import DeliveryClient
from .models import (
    DeliveryAuthError,
    DeliveryConfigurationError,
    DeliveryError,
    DeliveryNetworkError,
    DeliveryRateLimitedError,
    DeliveryRejectedError,
    Envelope,
    InvalidRecipientError,
    NotificationError,
    ProcessingOutcome,
    TemplateMissing,
    TemplateRenderError,
)
from .producer import NotificationProducer, normalize_recipient
from .templates import TemplateRenderer
from .worker import NotificationWorker

__all__ = [
    # Services
    "NotificationProducer",
    "NotificationWorker",
    # Components
    "TemplateRenderer",
    "DeliveryClient",
    # Models
    "Envelope",
    "ProcessingOutcome",
    # Exceptions
    "NotificationError",
    "InvalidRecipientError",
    "TemplateRenderError",
    "TemplateMissing",
    "DeliveryError",
    "DeliveryRateLimitedError",
    "DeliveryAuthError",
    "DeliveryRejectedError",
    "DeliveryNetworkError",
    "DeliveryConfigurationError",
    # Utilities
    "normalize_recipient",
]
