"""Payload builders for the built-in notification kinds.

Each builder fixes the template name, subject, and parameter shape for one
kind of email so callers only supply the values that vary.
"""

from typing import Optional
from urllib.parse import urlencode

from mailrelay.config.duration import humanize_duration
from mailrelay.config.models import ApplicationConfig
from mailrelay.domain.models import EmailPayload

WELCOME_TEMPLATE = "welcome"
RESET_PASSWORD_TEMPLATE = "reset-password"
ACCOUNT_CREATED_TEMPLATE = "user-created"

WELCOME_SUBJECT = "Welcome!"
RESET_PASSWORD_SUBJECT = "Reset your password"
ACCOUNT_CREATED_SUBJECT = "Your account has been created"


def build_login_url(app_config: ApplicationConfig) -> str:
    return f"{app_config.url}/login"


def build_reset_link(app_config: ApplicationConfig, reset_token: str) -> str:
    """Link to the web app's reset page carrying the secret as ``token``."""
    return f"{app_config.url}/reset-password?{urlencode({'token': reset_token})}"


def build_welcome_payload(
    email: str, first_name: str, app_config: ApplicationConfig
) -> EmailPayload:
    return EmailPayload(
        to=email,
        subject=WELCOME_SUBJECT,
        template=WELCOME_TEMPLATE,
        params={
            "firstName": first_name,
            "appName": app_config.name,
            "loginUrl": build_login_url(app_config),
        },
    )


def build_reset_password_payload(
    email: str,
    first_name: str,
    reset_token: str,
    app_config: ApplicationConfig,
    lifetime_seconds: float,
) -> EmailPayload:
    """Build the reset email payload.

    Args:
        email: Recipient address
        first_name: Greeting name
        reset_token: Plaintext secret to embed in the link
        app_config: Public app name and URL
        lifetime_seconds: Token lifetime, shown to the reader (e.g. "15 minutes")
    """
    return EmailPayload(
        to=email,
        subject=RESET_PASSWORD_SUBJECT,
        template=RESET_PASSWORD_TEMPLATE,
        params={
            "firstName": first_name,
            "resetLink": build_reset_link(app_config, reset_token),
            "expirationTime": humanize_duration(lifetime_seconds),
        },
    )


def build_account_created_payload(
    email: str,
    first_name: str,
    app_config: ApplicationConfig,
    temp_password: Optional[str] = None,
) -> EmailPayload:
    return EmailPayload(
        to=email,
        subject=ACCOUNT_CREATED_SUBJECT,
        template=ACCOUNT_CREATED_TEMPLATE,
        params={
            "firstName": first_name,
            "appName": app_config.name,
            "loginUrl": build_login_url(app_config),
            "tempPassword": temp_password or "",
            "hasTempPassword": "true" if temp_password else "false",
        },
    )
