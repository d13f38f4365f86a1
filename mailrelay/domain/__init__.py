"""Domain models for mailrelay."""

from .models import (
    ALLOWED_TRANSITIONS,
    BackoffKind,
    EmailPayload,
    JobKind,
    JobOptions,
    JobState,
    NotificationJob,
    Owner,
    QueueStatus,
    ResetToken,
    can_transition,
    require_transition,
    source_states,
)

__all__ = [
    "Owner",
    "ResetToken",
    "EmailPayload",
    "JobKind",
    "JobState",
    "BackoffKind",
    "JobOptions",
    "NotificationJob",
    "QueueStatus",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "source_states",
    "require_transition",
]
