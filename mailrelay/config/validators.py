"""Non-fatal configuration checks, reported as warnings."""

import warnings
from typing import List

from .models import AppConfig

# Beyond this the default SQLite backend spends most of its time on lock waits
SQLITE_CONCURRENCY_HINT = 8


def check_for_warnings(app_config: AppConfig, database_url: str = "") -> List[str]:
    """
    Inspect a validated configuration for settings that work but look risky.

    Args:
        app_config: Validated application configuration
        database_url: Database URL in use (some checks are backend-specific)

    Returns:
        List of warning messages
    """
    messages = []
    queue = app_config.queue

    if app_config.delivery.retry_client_errors:
        messages.append(
            "delivery.retry_client_errors is enabled: 400/401/403 responses from the "
            "provider consume the full retry budget before the job fails"
        )

    if queue.max_backoff_seconds < queue.backoff_delay_seconds:
        messages.append(
            f"queue.max_backoff ({queue.max_backoff}) is below queue.backoff_delay "
            f"({queue.backoff_delay}); every retry will wait max_backoff"
        )

    if queue.lease_timeout_seconds < 2 * app_config.delivery.timeout_seconds:
        messages.append(
            f"queue.lease_timeout ({queue.lease_timeout}) leaves little headroom over "
            f"delivery.timeout ({app_config.delivery.timeout}); slow renders may lose their lease"
        )

    if database_url.startswith("sqlite") and app_config.worker.concurrency > SQLITE_CONCURRENCY_HINT:
        messages.append(
            f"worker.concurrency={app_config.worker.concurrency} with SQLite serialises on the "
            "database write lock; consider PostgreSQL"
        )

    if not queue.remove_on_complete:
        messages.append(
            "queue.remove_on_complete is disabled: completed jobs accumulate until purged manually"
        )

    return messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
