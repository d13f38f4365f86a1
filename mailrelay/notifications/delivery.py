"""HTTP client for the transactional-email provider (Brevo API v3).

One ``send`` call is one delivery attempt. Every failure is raised as a
``DeliveryError`` subclass whose ``retryable`` flag tells the worker whether
another attempt could succeed; retry scheduling itself is the queue's job.
"""

import logging
from typing import Any, Dict, Optional

import requests

from mailrelay.config.models import DeliveryConfig
from mailrelay.logging import get_logger

from .models import (
    DeliveryAuthError,
    DeliveryConfigurationError,
    DeliveryError,
    DeliveryNetworkError,
    DeliveryRateLimitedError,
    DeliveryRejectedError,
    Envelope,
)

logger = get_logger(__name__, component="delivery")

# Truncate provider error bodies in logs and job errors
MAX_ERROR_BODY_CHARS = 500


class DeliveryClient:
    """Sends rendered emails through the provider's HTTP API.

    Attributes:
        api_key: Provider API key (empty means delivery is not configured)
        sender_email: From address
        sender_name: From display name
        config: Endpoint, timeout, and client-error retry policy
    """

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str,
        config: Optional[DeliveryConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Provider API key
            sender_email: From address
            sender_name: From display name
            config: Delivery settings (defaults used when omitted)
            session: Pre-built requests session (for tests)
        """
        self.api_key = api_key or ""
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.config = config or DeliveryConfig()
        self.timeout = self.config.timeout_seconds

        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "User-Agent": self.config.user_agent,
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )

        if not self.api_key:
            logger.warning(
                "BREVO_API_KEY is not configured; every delivery attempt will fail",
                extra={"event": "delivery.unconfigured"},
            )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, envelope: Envelope) -> Dict[str, Any]:
        """Provider request body for an envelope."""
        return {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": envelope.to}],
            "subject": envelope.subject,
            "htmlContent": envelope.html_content,
        }

    def send(self, envelope: Envelope) -> Optional[str]:
        """Deliver one email.

        Args:
            envelope: Rendered email

        Returns:
            Provider message id, if the provider returned one

        Raises:
            DeliveryConfigurationError: No API key configured (not retryable)
            DeliveryRateLimitedError: HTTP 429
            DeliveryAuthError: HTTP 401/403
            DeliveryRejectedError: HTTP 400/422
            DeliveryNetworkError: Timeout or connection failure
            DeliveryError: Any other non-2xx response
        """
        if not self.api_key:
            raise DeliveryConfigurationError(
                "Email service is not configured: missing BREVO_API_KEY"
            )

        url = self.config.api_url

        try:
            logger.debug(
                f"HTTP POST request to {url}",
                extra={
                    "event": "delivery.request",
                    "url": url,
                    "timeout": self.timeout,
                },
            )
            response = self._session.post(
                url,
                json=self.build_payload(envelope),
                headers={"api-key": self.api_key},
                timeout=self.timeout,
            )

        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={
                    "event": "delivery.retryable_error",
                    "error_type": "Timeout",
                    "url": url,
                    "timeout": self.timeout,
                },
            )
            raise DeliveryNetworkError(
                f"Request to provider timed out after {self.timeout} seconds"
            ) from e
        except requests.exceptions.RequestException as e:
            logger.warning(
                f"Request to {url} failed: {e}",
                extra={
                    "event": "delivery.retryable_error",
                    "error_type": type(e).__name__,
                    "url": url,
                },
            )
            raise DeliveryNetworkError(f"Request to provider failed: {e}") from e

        if response.status_code >= 400:
            raise self._classify(response)

        message_id = self._extract_message_id(response)
        logger.debug(
            "Provider accepted message",
            extra={
                "event": "delivery.accepted",
                "status_code": response.status_code,
                "message_id": message_id,
            },
        )
        return message_id

    def _classify(self, response: requests.Response) -> DeliveryError:
        """Map an error response to the matching DeliveryError subclass."""
        status = response.status_code
        body = (response.text or "")[:MAX_ERROR_BODY_CHARS]
        client_retry = self.config.retry_client_errors

        if status == 429:
            error = DeliveryRateLimitedError(
                "Email rate limit exceeded", status_code=status, retryable=True
            )
        elif status in (401, 403):
            error = DeliveryAuthError(
                "Email service authentication failed", status_code=status, retryable=client_retry
            )
        elif status in (400, 422):
            error = DeliveryRejectedError(
                f"Invalid email request: {body}", status_code=status, retryable=client_retry
            )
        else:
            error = DeliveryError(
                f"Failed to send email: HTTP {status} {response.reason or ''}".strip(),
                status_code=status,
                retryable=True,
            )

        level = logging.WARNING if error.retryable else logging.ERROR
        logger.log(
            level,
            f"HTTP {status} error from provider",
            extra={
                "event": "delivery.retryable_error" if error.retryable else "delivery.error",
                "status_code": status,
                "error_type": type(error).__name__,
                "response_body": body,
            },
        )
        return error

    @staticmethod
    def _extract_message_id(response: requests.Response) -> Optional[str]:
        try:
            data = response.json()
        except ValueError:
            # 2xx with no JSON body still means accepted
            return None
        if isinstance(data, dict):
            return data.get("messageId")
        return None

    def close(self) -> None:
        self._session.close()
