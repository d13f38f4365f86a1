"""Core domain models for owners, reset tokens, and notification jobs.

This module defines the data structures used throughout the application:
- Owner: account whose credential can be reset (owned by an external directory)
- ResetToken: single-use, time-limited credential reset token (hash only)
- EmailPayload: what a notification job should render and send
- NotificationJob: durable queue entry with retry policy and lease state
- QueueStatus: per-state job counts for operators
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator


def _as_utc(v: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if v is None:
        return None
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class JobState(str, Enum):
    """Lifecycle states of a notification job."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"


class JobKind(str, Enum):
    """Kinds of notification job accepted by the queue."""

    SEND_EMAIL = "send-email"
    SEND_WELCOME = "send-welcome"
    SEND_RESET_PASSWORD = "send-reset-password"
    SEND_ACCOUNT_CREATED = "send-account-created"


class BackoffKind(str, Enum):
    """Retry delay strategies stored on each job."""

    EXPONENTIAL = "exponential"
    FIXED = "fixed"


# Legal state changes. Anything else is a programming error.
ALLOWED_TRANSITIONS: Dict[JobState, frozenset] = {
    JobState.WAITING: frozenset({JobState.ACTIVE}),
    JobState.DELAYED: frozenset({JobState.ACTIVE, JobState.WAITING}),
    JobState.ACTIVE: frozenset(
        {JobState.COMPLETED, JobState.FAILED, JobState.DELAYED, JobState.WAITING}
    ),
    JobState.FAILED: frozenset({JobState.WAITING}),
    JobState.COMPLETED: frozenset(),
}


def can_transition(current: JobState, target: JobState) -> bool:
    """Check whether a job may move from ``current`` to ``target``."""
    return target in ALLOWED_TRANSITIONS[JobState(current)]


def source_states(target: JobState) -> frozenset:
    """States from which a job may move to ``target``."""
    return frozenset(state for state in JobState if can_transition(state, target))


def require_transition(current: JobState, target: JobState) -> None:
    """Raise ValueError unless ``current`` -> ``target`` is a legal move."""
    if not can_transition(current, target):
        raise ValueError(
            f"Illegal job transition: {JobState(current).value} -> {JobState(target).value}"
        )


class Owner(BaseModel):
    """Account that can request a credential reset.

    The owner directory is an external collaborator; mailrelay only needs the
    address, a display name for emails, and somewhere to write the new
    credential hash.
    """

    id: str = Field(..., description="Owner identifier")
    email: str = Field(..., description="Owner email address")
    first_name: str = Field("", description="Name used in greetings")
    credential_hash: Optional[str] = Field(None, description="bcrypt hash of the credential")
    created_at: datetime = Field(..., description="When the owner was created (UTC)")

    @field_validator("id", "email")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from required string fields."""
        if not v or not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class ResetToken(BaseModel):
    """Persisted record of an issued reset secret.

    Only the digest of the secret is ever stored. A token is valid while it
    has not been used and has not expired; issuing a new token for the same
    owner marks older ones as used.
    """

    id: str = Field(..., description="Token record identifier")
    owner_id: str = Field(..., description="Owner the token was issued for")
    token_hash: str = Field(..., min_length=64, max_length=64, description="SHA-256 hex digest")
    expires_at: datetime = Field(..., description="Expiry instant (UTC)")
    used_at: Optional[datetime] = Field(None, description="Consumption/invalidation instant (UTC)")
    created_at: datetime = Field(..., description="Issuance instant (UTC)")

    @field_validator("expires_at", "used_at", "created_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    def is_valid(self, now: datetime) -> bool:
        """Return True if the token is unused and ``now`` is before expiry."""
        return self.used_at is None and _as_utc(now) < self.expires_at


class EmailPayload(BaseModel):
    """Render-and-send instructions carried by a notification job."""

    to: str = Field(..., description="Recipient address")
    subject: str = Field(..., description="Subject line")
    template: str = Field(..., description="Template name without extension")
    params: Dict[str, str] = Field(default_factory=dict, description="Template parameters")

    @field_validator("to", "subject", "template")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("params", mode="before")
    @classmethod
    def stringify_params(cls, v):
        """Template parameters are strings; ``None`` becomes empty."""
        if v is None:
            return {}
        return {str(key): "" if value is None else str(value) for key, value in dict(v).items()}


class JobOptions(BaseModel):
    """Per-job retry policy, defaulted from the queue configuration."""

    max_attempts: int = Field(5, ge=1, description="Delivery attempts before the job fails")
    backoff_type: BackoffKind = Field(BackoffKind.EXPONENTIAL, description="Retry delay strategy")
    backoff_delay_ms: int = Field(3000, ge=0, description="Base retry delay in milliseconds")

    model_config = {"use_enum_values": True}


class NotificationJob(BaseModel):
    """Durable queue entry for one notification.

    ``attempt_count`` counts delivery attempts that have finished (successfully
    or not). ``lease_token`` is only set while the job is active and identifies
    the single worker allowed to move it out of that state.
    """

    id: str = Field(..., description="Job identifier")
    job_kind: JobKind = Field(..., description="Job kind")
    payload: EmailPayload = Field(..., description="What to render and send")
    attempt_count: int = Field(0, ge=0, description="Finished delivery attempts")
    max_attempts: int = Field(5, ge=1, description="Attempt budget")
    backoff_type: BackoffKind = Field(BackoffKind.EXPONENTIAL, description="Retry delay strategy")
    backoff_delay_ms: int = Field(3000, ge=0, description="Base retry delay in milliseconds")
    state: JobState = Field(JobState.WAITING, description="Lifecycle state")
    available_at: datetime = Field(..., description="Earliest time the job may be claimed (UTC)")
    enqueued_at: datetime = Field(..., description="When the job was enqueued (UTC)")
    updated_at: datetime = Field(..., description="Last state change (UTC)")
    finished_at: Optional[datetime] = Field(None, description="When the job completed or failed")
    last_error: Optional[str] = Field(None, description="Most recent failure reason")
    lease_owner: Optional[str] = Field(None, description="Worker holding the lease")
    lease_token: Optional[str] = Field(None, description="Lease token while active")
    lease_expires_at: Optional[datetime] = Field(None, description="Lease expiry (UTC)")
    version: int = Field(0, ge=0, description="Optimistic concurrency counter")

    @field_validator(
        "available_at", "enqueued_at", "updated_at", "finished_at", "lease_expires_at"
    )
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempt_count, 0)


class QueueStatus(BaseModel):
    """Per-state job counts.

    ``completed`` stays at zero while completed jobs are purged on success.
    """

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed + self.delayed
