"""Durable notification queue."""

from .backoff import BackoffPolicy
from .exceptions import JobNotFoundError, LeaseLostError, QueueError
from .service import NotificationQueue

__all__ = [
    "NotificationQueue",
    "BackoffPolicy",
    "QueueError",
    "LeaseLostError",
    "JobNotFoundError",
]
