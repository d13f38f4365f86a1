"""Data models and exceptions for the notification pipeline.

This module defines the message envelope handed to the delivery client, the
per-job processing outcome, and the error taxonomy the worker uses to decide
between retrying and failing a job.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    retryable = False


class InvalidRecipientError(NotificationError, ValueError):
    """Raised synchronously by the producer for a malformed recipient address."""

    pass


class TemplateRenderError(NotificationError):
    """Raised when a template exists but cannot be rendered (e.g. syntax error).

    Retrying will not fix a broken template, so the job fails immediately.
    """

    pass


class TemplateMissing(TemplateRenderError):
    """Raised when no template file exists for the requested name."""

    def __init__(self, template_name: str):
        self.template_name = template_name
        super().__init__(f"Email template '{template_name}' not found")


class DeliveryError(NotificationError):
    """Provider call failed.

    Attributes:
        status_code: HTTP status returned by the provider, if any
        retryable: Whether another attempt might succeed
    """

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable


class DeliveryRateLimitedError(DeliveryError):
    """Provider answered 429."""

    pass


class DeliveryAuthError(DeliveryError):
    """Provider rejected the API key (401/403)."""

    pass


class DeliveryRejectedError(DeliveryError):
    """Provider rejected the request itself (400/422)."""

    pass


class DeliveryNetworkError(DeliveryError):
    """Timeout, connection failure, or unreadable response."""

    pass


class DeliveryConfigurationError(DeliveryError):
    """No provider credentials configured; nothing can be sent."""

    retryable = False


@dataclass
class Envelope:
    """A rendered email ready for the provider.

    Attributes:
        to: Recipient address
        subject: Subject line
        html_content: Rendered HTML body
    """

    to: str
    subject: str
    html_content: str


@dataclass
class ProcessingOutcome:
    """Result of processing one claimed job.

    Attributes:
        job_id: Job identifier
        status: "completed", "retry_scheduled", "failed", or "lease_lost"
        attempts: Attempt count after this processing run
        error: Failure reason, if any
        retry_at: When the job becomes eligible again (retry_scheduled only)
        message_id: Provider message id (completed only)
    """

    job_id: str
    status: str
    attempts: int
    error: Optional[str] = None
    retry_at: Optional[datetime] = None
    message_id: Optional[str] = None

    def is_success(self) -> bool:
        return self.status == "completed"

    def is_terminal(self) -> bool:
        """True when the job will not be attempted again without an operator."""
        return self.status in ("completed", "failed")
