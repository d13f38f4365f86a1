"""Data access layer (repositories) for persistence operations.

This module provides repository classes for owners, reset tokens, and
notification jobs. Repositories encapsulate database operations and return
domain models rather than ORM models. They never commit: the caller's
``get_session()`` block is the transaction boundary.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mailrelay.domain.models import (
    JobState,
    NotificationJob,
    Owner,
    ResetToken,
    require_transition,
    source_states,
)
from mailrelay.utils.timestamps import to_storage

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import NotificationJobModel, OwnerModel, ResetTokenModel

logger = logging.getLogger(__name__)

# States a worker may claim from, taken from the job transition table
READY_STATES = tuple(sorted(state.value for state in source_states(JobState.ACTIVE)))


class OwnerRepository:
    """Repository for the owner directory."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def create(self, owner: Owner) -> Owner:
        """Insert a new owner.

        Raises:
            DataIntegrityError: If the id or email already exists
            PersistenceError: If database error occurs
        """
        try:
            owner_model = OwnerModel.from_domain(owner)
            owner_model.email = owner.email.lower()
            self.session.add(owner_model)
            self.session.flush()
            return owner_model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error creating owner {owner.id}: {e}")
            raise DataIntegrityError(f"Failed to create owner due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating owner {owner.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create owner: {e}") from e

    def get_by_id(self, owner_id: str) -> Optional[Owner]:
        """Retrieve owner by primary key, or None."""
        try:
            owner_model = self.session.get(OwnerModel, owner_id)
            return owner_model.to_domain() if owner_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve owner: {e}") from e

    def get_by_email(self, email: str) -> Optional[Owner]:
        """Retrieve owner by email address (case-insensitive), or None."""
        try:
            stmt = select(OwnerModel).where(func.lower(OwnerModel.email) == email.strip().lower())
            owner_model = self.session.execute(stmt).scalar_one_or_none()
            return owner_model.to_domain() if owner_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving owner by email: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve owner: {e}") from e

    def lock_for_update(self, owner_id: str) -> Optional[Owner]:
        """Load an owner with a row lock held until the transaction ends.

        Emits ``SELECT ... FOR UPDATE`` where the backend supports it. On
        SQLite the clause is dropped and the transaction already holds the
        database write lock.

        Returns:
            Owner if found, None otherwise
        """
        try:
            stmt = (
                select(OwnerModel)
                .where(OwnerModel.id == owner_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            owner_model = self.session.execute(stmt).scalar_one_or_none()
            return owner_model.to_domain() if owner_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error locking owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to lock owner: {e}") from e

    def update_credential(self, owner_id: str, credential_hash: str) -> None:
        """Replace an owner's credential hash.

        Raises:
            RecordNotFoundError: If the owner doesn't exist
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                update(OwnerModel)
                .where(OwnerModel.id == owner_id)
                .values(credential_hash=credential_hash)
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Owner {owner_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating credential for owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update credential: {e}") from e


class ResetTokenRepository:
    """Repository for reset-token records."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, token: ResetToken) -> ResetToken:
        """Insert a token record.

        Raises:
            DataIntegrityError: On a duplicate digest or unknown owner
            PersistenceError: If database error occurs
        """
        try:
            token_model = ResetTokenModel.from_domain(token)
            self.session.add(token_model)
            self.session.flush()
            return token_model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error storing reset token for owner {token.owner_id}: {e}")
            raise DataIntegrityError(
                f"Failed to store reset token due to constraint violation: {e}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error storing reset token: {e}", exc_info=True)
            raise PersistenceError(f"Failed to store reset token: {e}") from e

    def get_by_hash(self, token_hash: str) -> Optional[ResetToken]:
        """Retrieve a token record by digest, or None."""
        try:
            stmt = select(ResetTokenModel).where(ResetTokenModel.token_hash == token_hash)
            token_model = self.session.execute(stmt).scalar_one_or_none()
            return token_model.to_domain() if token_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving reset token: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve reset token: {e}") from e

    def list_for_owner(self, owner_id: str) -> List[ResetToken]:
        """All token records for an owner, newest first."""
        try:
            stmt = (
                select(ResetTokenModel)
                .where(ResetTokenModel.owner_id == owner_id)
                .order_by(ResetTokenModel.created_at.desc())
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing reset tokens for owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list reset tokens: {e}") from e

    def mark_used(self, token_id: str, now: datetime) -> bool:
        """Compare-and-set ``used_at`` on a still-valid token.

        The row only changes if it is unused and unexpired at ``now``, so two
        concurrent callers can never both succeed.

        Returns:
            True if this call spent the token, False otherwise
        """
        now_str = to_storage(now)
        try:
            stmt = (
                update(ResetTokenModel)
                .where(
                    ResetTokenModel.id == token_id,
                    ResetTokenModel.used_at.is_(None),
                    ResetTokenModel.expires_at > now_str,
                )
                .values(used_at=now_str)
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error marking reset token {token_id} used: {e}", exc_info=True)
            raise PersistenceError(f"Failed to mark reset token used: {e}") from e

    def invalidate_unused(
        self, owner_id: str, now: datetime, exclude_id: Optional[str] = None
    ) -> int:
        """Set ``used_at`` on every unconsumed token of an owner.

        Args:
            owner_id: Owner whose tokens are invalidated
            now: Invalidation instant
            exclude_id: Token record to leave untouched

        Returns:
            Number of tokens invalidated
        """
        try:
            stmt = update(ResetTokenModel).where(
                ResetTokenModel.owner_id == owner_id,
                ResetTokenModel.used_at.is_(None),
            )
            if exclude_id is not None:
                stmt = stmt.where(ResetTokenModel.id != exclude_id)

            result = self.session.execute(stmt.values(used_at=to_storage(now)))
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error invalidating reset tokens for owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to invalidate reset tokens: {e}") from e


class JobRepository:
    """Repository for notification queue rows.

    State-changing methods are conditional updates that report whether the
    row matched, so callers can detect lost races instead of overwriting.
    """

    def __init__(self, session: Session):
        self.session = session

    def add(self, job: NotificationJob) -> NotificationJob:
        """Insert a new job."""
        try:
            job_model = NotificationJobModel.from_domain(job)
            self.session.add(job_model)
            self.session.flush()
            return job_model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error adding job {job.id}: {e}")
            raise DataIntegrityError(f"Failed to add job due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding job {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add job: {e}") from e

    def get(self, job_id: str) -> Optional[NotificationJob]:
        """Retrieve a job by id, or None."""
        try:
            stmt = (
                select(NotificationJobModel)
                .where(NotificationJobModel.id == job_id)
                .execution_options(populate_existing=True)
            )
            job_model = self.session.execute(stmt).scalar_one_or_none()
            return job_model.to_domain() if job_model else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve job: {e}") from e

    def find_ready(self, now: datetime, limit: int = 10) -> List[NotificationJob]:
        """Jobs in waiting/delayed whose ``available_at`` has passed, oldest first."""
        try:
            stmt = (
                select(NotificationJobModel)
                .where(
                    NotificationJobModel.state.in_(READY_STATES),
                    NotificationJobModel.available_at <= to_storage(now),
                )
                .order_by(NotificationJobModel.available_at, NotificationJobModel.enqueued_at)
                .limit(limit)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error finding ready jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to find ready jobs: {e}") from e

    def try_claim(
        self,
        job_id: str,
        expected_version: int,
        worker_id: str,
        lease_token: str,
        lease_expires_at: datetime,
        now: datetime,
    ) -> bool:
        """Move a ready job to active if nobody changed it since it was read.

        Returns:
            True if this call won the claim
        """
        now_str = to_storage(now)
        try:
            stmt = (
                update(NotificationJobModel)
                .where(
                    NotificationJobModel.id == job_id,
                    NotificationJobModel.version == expected_version,
                    NotificationJobModel.state.in_(READY_STATES),
                    NotificationJobModel.available_at <= now_str,
                )
                .values(
                    state=JobState.ACTIVE.value,
                    lease_owner=worker_id,
                    lease_token=lease_token,
                    lease_expires_at=to_storage(lease_expires_at),
                    updated_at=now_str,
                    version=NotificationJobModel.version + 1,
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error claiming job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim job: {e}") from e

    def update_leased(
        self, job_id: str, lease_token: str, target: JobState, values: Dict[str, Any]
    ) -> bool:
        """Move an active job to ``target``, but only for the current lease holder.

        The lease columns are cleared and ``version`` bumped as part of the
        same statement.

        Returns:
            True if the lease was still held and the row changed

        Raises:
            ValueError: If active -> ``target`` is not a legal transition
        """
        require_transition(JobState.ACTIVE, target)
        try:
            stmt = (
                update(NotificationJobModel)
                .where(
                    NotificationJobModel.id == job_id,
                    NotificationJobModel.state == JobState.ACTIVE.value,
                    NotificationJobModel.lease_token == lease_token,
                )
                .values(
                    state=JobState(target).value,
                    lease_owner=None,
                    lease_token=None,
                    lease_expires_at=None,
                    version=NotificationJobModel.version + 1,
                    **values,
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error updating leased job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update job: {e}") from e

    def delete_leased(self, job_id: str, lease_token: str) -> bool:
        """Delete an active job held under ``lease_token``.

        Returns:
            True if the lease was still held and the row was removed
        """
        require_transition(JobState.ACTIVE, JobState.COMPLETED)
        try:
            stmt = delete(NotificationJobModel).where(
                NotificationJobModel.id == job_id,
                NotificationJobModel.state == JobState.ACTIVE.value,
                NotificationJobModel.lease_token == lease_token,
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error deleting job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete job: {e}") from e

    def fail_expired(self, now: datetime, error: str) -> int:
        """Fail active jobs whose lease expired on their last allowed attempt.

        Returns:
            Number of jobs failed
        """
        require_transition(JobState.ACTIVE, JobState.FAILED)
        now_str = to_storage(now)
        try:
            stmt = (
                update(NotificationJobModel)
                .where(
                    NotificationJobModel.state == JobState.ACTIVE.value,
                    NotificationJobModel.lease_expires_at <= now_str,
                    NotificationJobModel.attempt_count + 1 >= NotificationJobModel.max_attempts,
                )
                .values(
                    state=JobState.FAILED.value,
                    attempt_count=NotificationJobModel.attempt_count + 1,
                    finished_at=now_str,
                    updated_at=now_str,
                    last_error=error,
                    lease_owner=None,
                    lease_token=None,
                    lease_expires_at=None,
                    version=NotificationJobModel.version + 1,
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error failing expired leases: {e}", exc_info=True)
            raise PersistenceError(f"Failed to fail expired leases: {e}") from e

    def requeue_expired(self, now: datetime) -> int:
        """Return active jobs with expired leases to waiting.

        The expired lease is charged as an attempt, since the delivery may
        have gone out before the worker died. Run ``fail_expired`` first so
        jobs on their last attempt fail instead.

        Returns:
            Number of jobs requeued
        """
        require_transition(JobState.ACTIVE, JobState.WAITING)
        now_str = to_storage(now)
        try:
            stmt = (
                update(NotificationJobModel)
                .where(
                    NotificationJobModel.state == JobState.ACTIVE.value,
                    NotificationJobModel.lease_expires_at <= now_str,
                )
                .values(
                    state=JobState.WAITING.value,
                    attempt_count=NotificationJobModel.attempt_count + 1,
                    available_at=now_str,
                    updated_at=now_str,
                    lease_owner=None,
                    lease_token=None,
                    lease_expires_at=None,
                    version=NotificationJobModel.version + 1,
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error requeueing expired leases: {e}", exc_info=True)
            raise PersistenceError(f"Failed to requeue expired leases: {e}") from e

    def promote_due(self, now: datetime) -> int:
        """Move delayed jobs whose delay elapsed to waiting.

        Returns:
            Number of jobs promoted
        """
        require_transition(JobState.DELAYED, JobState.WAITING)
        now_str = to_storage(now)
        try:
            stmt = (
                update(NotificationJobModel)
                .where(
                    NotificationJobModel.state == JobState.DELAYED.value,
                    NotificationJobModel.available_at <= now_str,
                )
                .values(
                    state=JobState.WAITING.value,
                    updated_at=now_str,
                    version=NotificationJobModel.version + 1,
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount

        except SQLAlchemyError as e:
            logger.error(f"Error promoting delayed jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to promote delayed jobs: {e}") from e

    def reset_failed(self, job_id: str, now: datetime) -> bool:
        """Put a failed job back in waiting with a fresh attempt budget.

        Returns:
            True if the job existed and was failed
        """
        require_transition(JobState.FAILED, JobState.WAITING)
        now_str = to_storage(now)
        try:
            stmt = (
                update(NotificationJobModel)
                .where(
                    NotificationJobModel.id == job_id,
                    NotificationJobModel.state == JobState.FAILED.value,
                )
                .values(
                    state=JobState.WAITING.value,
                    attempt_count=0,
                    available_at=now_str,
                    updated_at=now_str,
                    finished_at=None,
                    version=NotificationJobModel.version + 1,
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount == 1

        except SQLAlchemyError as e:
            logger.error(f"Error resetting failed job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to reset job: {e}") from e

    def count_by_state(self) -> Dict[str, int]:
        """Number of jobs per state (states with no jobs are omitted)."""
        try:
            stmt = select(NotificationJobModel.state, func.count()).group_by(
                NotificationJobModel.state
            )
            return {state: count for state, count in self.session.execute(stmt).all()}

        except SQLAlchemyError as e:
            logger.error(f"Error counting jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count jobs: {e}") from e

    def list_by_state(self, state: JobState, limit: int = 50) -> List[NotificationJob]:
        """Jobs in one state, most recently updated first."""
        try:
            stmt = (
                select(NotificationJobModel)
                .where(NotificationJobModel.state == JobState(state).value)
                .order_by(NotificationJobModel.updated_at.desc())
                .limit(limit)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing {state} jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list jobs: {e}") from e
