"""Durable notification queue backed by the ``notification_jobs`` table.

Job lifecycle::

    waiting ──claim──> active ──complete──> completed (purged by default)
       ^                 │  ├──retry_later──> delayed ──promote/claim──┐
       │                 │  └──fail──> failed ──retry_failed──┐        │
       └─────────────────┴──lease expired──────────────────────┴────────┘

Allowed moves come from ``mailrelay.domain.models.ALLOWED_TRANSITIONS``. An
expired lease counts as an attempt; on the last attempt it fails the job.

A worker claims a job with a compare-and-set on ``version`` and receives a
lease token. Every transition out of ``active`` must present that token; if
the lease expired and the job was requeued, the stale worker gets
``LeaseLostError`` instead of overwriting the new holder's state.
"""

import uuid
from datetime import datetime, timedelta
from typing import Callable, ContextManager, List, Optional

from sqlalchemy.orm import Session

from mailrelay.config.models import QueueConfig
from mailrelay.domain.models import (
    BackoffKind,
    EmailPayload,
    JobKind,
    JobOptions,
    JobState,
    NotificationJob,
    QueueStatus,
)
from mailrelay.logging import get_logger
from mailrelay.persistence import JobRepository, get_session
from mailrelay.utils.timestamps import format_timestamp_for_log, to_storage, utc_now

from .backoff import BackoffPolicy
from .exceptions import JobNotFoundError, LeaseLostError

logger = get_logger(__name__, component="queue")

# Candidates fetched per claim round, and rounds before giving up
CLAIM_CANDIDATES = 10
MAX_CLAIM_ROUNDS = 3

LEASE_EXPIRED_ERROR = "lease expired"


class NotificationQueue:
    """Queue operations for producers, workers, and operators.

    Args:
        config: Retry, lease, and retention policy
        session_factory: Context manager yielding a transactional session
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        config: Optional[QueueConfig] = None,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or QueueConfig()
        self.session_factory = session_factory
        self.clock = clock
        self.lease_timeout = timedelta(seconds=self.config.lease_timeout_seconds)

    def default_options(self) -> JobOptions:
        """Retry policy applied to jobs enqueued without explicit options."""
        return JobOptions(
            max_attempts=self.config.max_attempts,
            backoff_type=BackoffKind(self.config.backoff_type),
            backoff_delay_ms=int(self.config.backoff_delay_seconds * 1000),
        )

    def backoff_for(self, job: NotificationJob) -> BackoffPolicy:
        """Backoff policy for a job, capped by ``queue.max_backoff``."""
        return BackoffPolicy.for_job(job, max_delay_seconds=self.config.max_backoff_seconds)

    def add(
        self,
        job_kind: JobKind,
        payload: EmailPayload,
        options: Optional[JobOptions] = None,
    ) -> str:
        """Persist a new waiting job.

        The job is durable once this returns.

        Args:
            job_kind: Kind of notification
            payload: What to render and send
            options: Retry policy (queue defaults when omitted)

        Returns:
            New job id
        """
        options = options or self.default_options()
        now = self.clock()
        job = NotificationJob(
            id=str(uuid.uuid4()),
            job_kind=job_kind,
            payload=payload,
            attempt_count=0,
            max_attempts=options.max_attempts,
            backoff_type=options.backoff_type,
            backoff_delay_ms=options.backoff_delay_ms,
            state=JobState.WAITING,
            available_at=now,
            enqueued_at=now,
            updated_at=now,
        )

        with self.session_factory() as session:
            JobRepository(session).add(job)

        logger.info(
            "Job enqueued",
            extra={
                "event": "queue.job.enqueued",
                "job_id": job.id,
                "job_kind": job.job_kind.value,
                "template": payload.template,
                "max_attempts": job.max_attempts,
            },
        )
        return job.id

    def claim(self, worker_id: str) -> Optional[NotificationJob]:
        """Take the oldest eligible job for ``worker_id``.

        Eligible jobs are waiting or delayed with ``available_at`` in the
        past. A lost compare-and-set moves on to the next candidate.

        Returns:
            The claimed job (state active, lease fields set), or None
        """
        for _ in range(MAX_CLAIM_ROUNDS):
            now = self.clock()
            lease_token = uuid.uuid4().hex
            lease_expires_at = now + self.lease_timeout

            with self.session_factory() as session:
                repo = JobRepository(session)
                candidates = repo.find_ready(now, limit=CLAIM_CANDIDATES)
                if not candidates:
                    return None

                for candidate in candidates:
                    if repo.try_claim(
                        candidate.id,
                        candidate.version,
                        worker_id,
                        lease_token,
                        lease_expires_at,
                        now,
                    ):
                        claimed = candidate.model_copy(
                            update={
                                "state": JobState.ACTIVE,
                                "lease_owner": worker_id,
                                "lease_token": lease_token,
                                "lease_expires_at": lease_expires_at,
                                "updated_at": now,
                                "version": candidate.version + 1,
                            }
                        )
                        break
                else:
                    claimed = None

            if claimed is not None:
                logger.debug(
                    "Job claimed",
                    extra={
                        "event": "queue.job.claimed",
                        "job_id": claimed.id,
                        "worker_id": worker_id,
                        "attempt": claimed.attempt_count + 1,
                        "lease_expires_at": format_timestamp_for_log(lease_expires_at),
                    },
                )
                return claimed

            logger.debug(
                "Lost every claim race this round, retrying",
                extra={"event": "queue.claim.contended", "worker_id": worker_id},
            )

        return None

    def complete(self, job: NotificationJob) -> None:
        """Record a successful delivery.

        The job is deleted when ``remove_on_complete`` is set, otherwise it
        is kept in state completed.

        Raises:
            LeaseLostError: If ``job.lease_token`` no longer holds the job
        """
        now = self.clock()

        with self.session_factory() as session:
            repo = JobRepository(session)
            if self.config.remove_on_complete:
                held = repo.delete_leased(job.id, job.lease_token)
            else:
                held = repo.update_leased(
                    job.id,
                    job.lease_token,
                    JobState.COMPLETED,
                    {
                        "attempt_count": job.attempt_count + 1,
                        "finished_at": to_storage(now),
                        "updated_at": to_storage(now),
                        "last_error": None,
                    },
                )
            if not held:
                raise LeaseLostError(job.id)

        logger.info(
            "Job completed",
            extra={
                "event": "queue.job.completed",
                "job_id": job.id,
                "attempts": job.attempt_count + 1,
                "purged": self.config.remove_on_complete,
            },
        )

    def retry_later(self, job: NotificationJob, delay_seconds: float, error: str) -> datetime:
        """Record a failed attempt and park the job until ``delay_seconds`` pass.

        Returns:
            When the job becomes eligible again

        Raises:
            LeaseLostError: If ``job.lease_token`` no longer holds the job
        """
        now = self.clock()
        available_at = now + timedelta(seconds=delay_seconds)

        with self.session_factory() as session:
            held = JobRepository(session).update_leased(
                job.id,
                job.lease_token,
                JobState.DELAYED,
                {
                    "attempt_count": job.attempt_count + 1,
                    "available_at": to_storage(available_at),
                    "updated_at": to_storage(now),
                    "last_error": error,
                },
            )
            if not held:
                raise LeaseLostError(job.id)

        logger.info(
            "Job scheduled for retry",
            extra={
                "event": "queue.job.retry_scheduled",
                "job_id": job.id,
                "attempt": job.attempt_count + 1,
                "max_attempts": job.max_attempts,
                "delay_seconds": round(delay_seconds, 3),
                "available_at": format_timestamp_for_log(available_at),
            },
        )
        return available_at

    def fail(self, job: NotificationJob, error: str) -> None:
        """Record a final failed attempt; the job is retained in state failed.

        Raises:
            LeaseLostError: If ``job.lease_token`` no longer holds the job
        """
        now = self.clock()

        with self.session_factory() as session:
            held = JobRepository(session).update_leased(
                job.id,
                job.lease_token,
                JobState.FAILED,
                {
                    "attempt_count": job.attempt_count + 1,
                    "finished_at": to_storage(now),
                    "updated_at": to_storage(now),
                    "last_error": error,
                },
            )
            if not held:
                raise LeaseLostError(job.id)

        logger.warning(
            "Job failed",
            extra={
                "event": "queue.job.failed",
                "job_id": job.id,
                "job_kind": job.job_kind.value,
                "attempts": job.attempt_count + 1,
                "error": error,
            },
        )

    def requeue_expired_leases(self) -> int:
        """Recover jobs whose worker stopped reporting.

        Each expired lease costs the job one attempt. Jobs that had no
        attempts left move to failed with ``last_error`` set to
        ``LEASE_EXPIRED_ERROR``; the rest go back to waiting.

        Returns:
            Number of jobs requeued
        """
        now = self.clock()
        with self.session_factory() as session:
            repo = JobRepository(session)
            failed = repo.fail_expired(now, LEASE_EXPIRED_ERROR)
            count = repo.requeue_expired(now)

        if failed:
            logger.warning(
                f"Failed {failed} job(s) whose lease expired on the last attempt",
                extra={"event": "queue.lease.exhausted", "count": failed},
            )
        if count:
            logger.warning(
                f"Requeued {count} job(s) with expired leases",
                extra={"event": "queue.lease.expired", "count": count},
            )
        return count

    def promote_due_jobs(self) -> int:
        """Move delayed jobs whose backoff elapsed to waiting.

        Returns:
            Number of jobs promoted
        """
        with self.session_factory() as session:
            count = JobRepository(session).promote_due(self.clock())

        if count:
            logger.debug(
                f"Promoted {count} delayed job(s)",
                extra={"event": "queue.job.promoted", "count": count},
            )
        return count

    def get_status(self) -> QueueStatus:
        """Count jobs per state."""
        with self.session_factory() as session:
            counts = JobRepository(session).count_by_state()

        return QueueStatus(**{state.value: counts.get(state.value, 0) for state in JobState})

    def get_job(self, job_id: str) -> Optional[NotificationJob]:
        with self.session_factory() as session:
            return JobRepository(session).get(job_id)

    def get_failed(self, limit: int = 50) -> List[NotificationJob]:
        """Failed jobs, most recent first."""
        with self.session_factory() as session:
            return JobRepository(session).list_by_state(JobState.FAILED, limit=limit)

    def retry_failed(self, job_id: str) -> None:
        """Re-drive a failed job with a fresh attempt budget.

        Raises:
            JobNotFoundError: If no failed job has this id
        """
        with self.session_factory() as session:
            repo = JobRepository(session)
            if not repo.reset_failed(job_id, self.clock()):
                existing = repo.get(job_id)
                if existing is None:
                    raise JobNotFoundError(job_id)
                raise JobNotFoundError(job_id, f"is {existing.state.value}, not failed")

        logger.info(
            "Failed job re-driven",
            extra={"event": "queue.job.redriven", "job_id": job_id},
        )
