"""Producer side of the notification pipeline.

Callers enqueue notifications here and get a job id back as soon as the job
row is committed. Nothing is rendered or sent on the caller's thread.
"""

from typing import Any, Dict, Optional, Union

from email_validator import EmailNotValidError, validate_email
from pydantic import ValidationError

from mailrelay.config.models import ApplicationConfig
from mailrelay.domain.models import EmailPayload, JobKind, JobOptions, QueueStatus
from mailrelay.logging import get_logger
from mailrelay.queue import NotificationQueue
from mailrelay.tokens.store import DEFAULT_TOKEN_LIFETIME_SECONDS

from .models import InvalidRecipientError
from .payloads import (
    build_account_created_payload,
    build_reset_password_payload,
    build_welcome_payload,
)

logger = get_logger(__name__, component="producer")


class NotificationProducer:
    """Enqueues notification jobs.

    Args:
        queue: Queue the jobs are written to
        app_config: Public app name and URL used in email parameters
        token_lifetime_seconds: Reset-token lifetime shown in reset emails
    """

    def __init__(
        self,
        queue: NotificationQueue,
        app_config: Optional[ApplicationConfig] = None,
        token_lifetime_seconds: float = DEFAULT_TOKEN_LIFETIME_SECONDS,
    ):
        self.queue = queue
        self.app_config = app_config or ApplicationConfig()
        self.token_lifetime_seconds = token_lifetime_seconds

    def enqueue(
        self,
        job_kind: JobKind,
        payload: EmailPayload,
        options: Optional[JobOptions] = None,
    ) -> str:
        """Persist a notification job and return its id.

        The recipient is validated and normalised first; nothing is enqueued
        for an invalid address.

        Raises:
            InvalidRecipientError: If ``payload.to`` is not a valid address
        """
        recipient = normalize_recipient(payload.to)
        if recipient != payload.to:
            payload = payload.model_copy(update={"to": recipient})

        return self.queue.add(JobKind(job_kind), payload, options)

    def enqueue_mail(self, request: Union[EmailPayload, Dict[str, Any]]) -> str:
        """Enqueue a generic email from ``to``/``subject``/``template``/``params``.

        Raises:
            InvalidRecipientError: If the recipient is invalid
            ValueError: If required fields are missing or blank
        """
        if not isinstance(request, EmailPayload):
            try:
                request = EmailPayload.model_validate(request)
            except ValidationError as e:
                raise ValueError(f"Invalid email request: {e}") from e

        return self.enqueue(JobKind.SEND_EMAIL, request)

    def send_welcome_email(self, email: str, first_name: str) -> str:
        """Enqueue the welcome email for a new account."""
        payload = build_welcome_payload(email, first_name, self.app_config)
        job_id = self.enqueue(JobKind.SEND_WELCOME, payload)
        logger.info(
            "Welcome email queued",
            extra={"event": "producer.welcome.queued", "job_id": job_id},
        )
        return job_id

    def send_password_reset_email(self, email: str, first_name: str, reset_token: str) -> str:
        """Enqueue the credential reset email carrying ``reset_token``.

        The secret lives only in the job payload; it is never logged.
        """
        payload = build_reset_password_payload(
            email,
            first_name,
            reset_token,
            self.app_config,
            self.token_lifetime_seconds,
        )
        job_id = self.enqueue(JobKind.SEND_RESET_PASSWORD, payload)
        logger.info(
            "Password reset email queued",
            extra={"event": "producer.reset_password.queued", "job_id": job_id},
        )
        return job_id

    def send_account_created_email(
        self, email: str, first_name: str, temp_password: Optional[str] = None
    ) -> str:
        """Enqueue the account-created email, optionally with a temporary credential."""
        payload = build_account_created_payload(
            email, first_name, self.app_config, temp_password=temp_password
        )
        job_id = self.enqueue(JobKind.SEND_ACCOUNT_CREATED, payload)
        logger.info(
            "Account created email queued",
            extra={
                "event": "producer.account_created.queued",
                "job_id": job_id,
                "has_temp_password": bool(temp_password),
            },
        )
        return job_id

    def get_queue_status(self) -> QueueStatus:
        return self.queue.get_status()


def normalize_recipient(address: str) -> str:
    """Validate a recipient address and return its normalised form.

    Raises:
        InvalidRecipientError: If the address is not valid
    """
    try:
        return validate_email(address, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise InvalidRecipientError(f"Invalid recipient address '{address}': {e}") from e
