"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for the database schema and provides
conversion methods between ORM models and domain models.
"""

import logging

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from mailrelay.domain.models import EmailPayload, NotificationJob, Owner, ResetToken
from mailrelay.utils.timestamps import from_storage, to_storage

logger = logging.getLogger(__name__)

Base = declarative_base()


class OwnerModel(Base):
    """ORM model for owners table.

    Minimal account record: reset tokens reference it and credential writes
    land on it in the same transaction as token consumption.
    """

    __tablename__ = "owners"

    id = Column(String(64), primary_key=True, nullable=False)
    email = Column(String(320), nullable=False, unique=True)
    first_name = Column(String(255), nullable=False, default="")
    credential_hash = Column(String(255), nullable=True)
    created_at = Column(String(50), nullable=False)

    def to_domain(self) -> Owner:
        return Owner(
            id=self.id,
            email=self.email,
            first_name=self.first_name or "",
            credential_hash=self.credential_hash,
            created_at=from_storage(self.created_at),
        )

    @classmethod
    def from_domain(cls, owner: Owner) -> "OwnerModel":
        return cls(
            id=owner.id,
            email=owner.email,
            first_name=owner.first_name,
            credential_hash=owner.credential_hash,
            created_at=to_storage(owner.created_at),
        )


class ResetTokenModel(Base):
    """ORM model for reset_tokens table.

    Stores the digest of each issued secret. Rows are never deleted; a token
    is spent by setting ``used_at``.
    """

    __tablename__ = "reset_tokens"

    id = Column(String(36), primary_key=True, nullable=False)
    owner_id = Column(
        String(64), ForeignKey("owners.id", ondelete="CASCADE"), nullable=False
    )
    token_hash = Column(String(64), nullable=False, unique=True)

    # Timestamps (stored as ISO 8601 strings)
    expires_at = Column(String(50), nullable=False)
    used_at = Column(String(50), nullable=True)
    created_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_reset_tokens_owner_unused", "owner_id", "used_at"),)

    def to_domain(self) -> ResetToken:
        return ResetToken(
            id=self.id,
            owner_id=self.owner_id,
            token_hash=self.token_hash,
            expires_at=from_storage(self.expires_at),
            used_at=from_storage(self.used_at),
            created_at=from_storage(self.created_at),
        )

    @classmethod
    def from_domain(cls, token: ResetToken) -> "ResetTokenModel":
        return cls(
            id=token.id,
            owner_id=token.owner_id,
            token_hash=token.token_hash,
            expires_at=to_storage(token.expires_at),
            used_at=to_storage(token.used_at),
            created_at=to_storage(token.created_at),
        )


class NotificationJobModel(Base):
    """ORM model for notification_jobs table.

    The queue itself. ``version`` is bumped on every state change so claims
    can compare-and-set without holding locks across the delivery call.
    """

    __tablename__ = "notification_jobs"

    id = Column(String(36), primary_key=True, nullable=False)
    job_kind = Column(String(50), nullable=False)
    payload = Column(Text, nullable=False)  # EmailPayload as JSON

    # Retry policy
    attempt_count = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False)
    backoff_type = Column(String(20), nullable=False)
    backoff_delay_ms = Column(Integer, nullable=False)

    # Lifecycle
    state = Column(String(20), nullable=False)
    available_at = Column(String(50), nullable=False)
    enqueued_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)
    finished_at = Column(String(50), nullable=True)
    last_error = Column(Text, nullable=True)

    # Lease
    lease_owner = Column(String(255), nullable=True)
    lease_token = Column(String(64), nullable=True)
    lease_expires_at = Column(String(50), nullable=True)

    version = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_notification_jobs_ready", "state", "available_at"),
        Index("idx_notification_jobs_lease", "state", "lease_expires_at"),
    )

    def to_domain(self) -> NotificationJob:
        return NotificationJob(
            id=self.id,
            job_kind=self.job_kind,
            payload=EmailPayload.model_validate_json(self.payload),
            attempt_count=self.attempt_count,
            max_attempts=self.max_attempts,
            backoff_type=self.backoff_type,
            backoff_delay_ms=self.backoff_delay_ms,
            state=self.state,
            available_at=from_storage(self.available_at),
            enqueued_at=from_storage(self.enqueued_at),
            updated_at=from_storage(self.updated_at),
            finished_at=from_storage(self.finished_at),
            last_error=self.last_error,
            lease_owner=self.lease_owner,
            lease_token=self.lease_token,
            lease_expires_at=from_storage(self.lease_expires_at),
            version=self.version,
        )

    @classmethod
    def from_domain(cls, job: NotificationJob) -> "NotificationJobModel":
        return cls(
            id=job.id,
            job_kind=job.job_kind.value,
            payload=job.payload.model_dump_json(),
            attempt_count=job.attempt_count,
            max_attempts=job.max_attempts,
            backoff_type=job.backoff_type.value,
            backoff_delay_ms=job.backoff_delay_ms,
            state=job.state.value,
            available_at=to_storage(job.available_at),
            enqueued_at=to_storage(job.enqueued_at),
            updated_at=to_storage(job.updated_at),
            finished_at=to_storage(job.finished_at),
            last_error=job.last_error,
            lease_owner=job.lease_owner,
            lease_token=job.lease_token,
            lease_expires_at=to_storage(job.lease_expires_at),
            version=job.version,
        )


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent).

    Args:
        engine: SQLAlchemy engine instance
    """
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
