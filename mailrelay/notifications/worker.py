"""Consumer side of the notification pipeline.

A worker claims one job at a time, renders its template, and hands the result
to the delivery client. The outcome is written back to the queue:

- delivered: completed (purged by default)
- retryable failure with attempts left: delayed by the job's backoff
- anything else: failed, retained with its last error

The worker never sleeps for backoff; a delayed job simply isn't claimable
until its ``available_at`` passes.
"""

from typing import List, Optional

from mailrelay.domain.models import NotificationJob
from mailrelay.logging import get_logger
from mailrelay.logging.context import log_context
from mailrelay.queue import LeaseLostError, NotificationQueue

from .delivery import DeliveryClient
from .models import DeliveryError, Envelope, ProcessingOutcome, TemplateRenderError
from .templates import TemplateRenderer

logger = get_logger(__name__, component="worker")


class NotificationWorker:
    """Processes claimed notification jobs.

    Args:
        queue: Queue jobs are claimed from and reported to
        renderer: Template renderer
        delivery_client: Provider client
    """

    def __init__(
        self,
        queue: NotificationQueue,
        renderer: TemplateRenderer,
        delivery_client: DeliveryClient,
    ):
        self.queue = queue
        self.renderer = renderer
        self.delivery_client = delivery_client

    def run_once(self, worker_id: str) -> Optional[ProcessingOutcome]:
        """Claim and process at most one job.

        Returns:
            Outcome of the processed job, or None if nothing was claimable
        """
        job = self.queue.claim(worker_id)
        if job is None:
            return None
        return self.process(job)

    def drain(self, worker_id: str, limit: Optional[int] = None) -> List[ProcessingOutcome]:
        """Process jobs until the queue yields nothing or ``limit`` is reached."""
        outcomes = []
        while limit is None or len(outcomes) < limit:
            outcome = self.run_once(worker_id)
            if outcome is None:
                break
            outcomes.append(outcome)
        return outcomes

    def process(self, job: NotificationJob) -> ProcessingOutcome:
        """Render, deliver, and record the outcome of one claimed job."""
        payload = job.payload
        attempt = job.attempt_count + 1

        with log_context(job_id=job.id, worker_id=job.lease_owner, job_kind=job.job_kind.value):
            logger.info(
                f"Processing job {job.id} (attempt {attempt}/{job.max_attempts})",
                extra={
                    "event": "worker.job.started",
                    "attempt": attempt,
                    "template": payload.template,
                },
            )

            try:
                html = self.renderer.render(payload.template, payload.params)
            except TemplateRenderError as e:
                # Broken or missing templates won't fix themselves
                return self._record_failure(job, str(e), retryable=False)

            envelope = Envelope(to=payload.to, subject=payload.subject, html_content=html)

            try:
                message_id = self.delivery_client.send(envelope)
            except DeliveryError as e:
                return self._record_failure(
                    job, f"{type(e).__name__}: {e}", retryable=e.retryable
                )
            except Exception as e:
                logger.exception(
                    f"Unexpected error delivering job {job.id}",
                    extra={"event": "worker.job.unexpected_error", "error_type": type(e).__name__},
                )
                return self._record_failure(job, f"{type(e).__name__}: {e}", retryable=True)

            try:
                self.queue.complete(job)
            except LeaseLostError as e:
                return self._lease_lost(job, e)

            logger.info(
                f"Job {job.id} delivered",
                extra={
                    "event": "worker.job.completed",
                    "attempts": attempt,
                    "message_id": message_id,
                },
            )
            return ProcessingOutcome(
                job_id=job.id,
                status="completed",
                attempts=attempt,
                message_id=message_id,
            )

    def _record_failure(
        self, job: NotificationJob, error: str, retryable: bool
    ) -> ProcessingOutcome:
        attempts = job.attempt_count + 1

        try:
            if retryable and attempts < job.max_attempts:
                delay = self.queue.backoff_for(job).delay_for(attempts)
                retry_at = self.queue.retry_later(job, delay, error)
                logger.warning(
                    f"Job {job.id} attempt {attempts}/{job.max_attempts} failed, retrying",
                    extra={
                        "event": "worker.job.retry_scheduled",
                        "attempt": attempts,
                        "delay_seconds": round(delay, 3),
                        "error": error,
                    },
                )
                return ProcessingOutcome(
                    job_id=job.id,
                    status="retry_scheduled",
                    attempts=attempts,
                    error=error,
                    retry_at=retry_at,
                )

            self.queue.fail(job, error)
        except LeaseLostError as e:
            return self._lease_lost(job, e)

        logger.error(
            f"Job {job.id} failed after {attempts} attempt(s): {error}",
            extra={
                "event": "worker.job.failed",
                "attempts": attempts,
                "retryable": retryable,
                "error": error,
            },
        )
        return ProcessingOutcome(job_id=job.id, status="failed", attempts=attempts, error=error)

    def _lease_lost(self, job: NotificationJob, error: LeaseLostError) -> ProcessingOutcome:
        logger.warning(
            f"Lost lease on job {job.id}; outcome discarded",
            extra={"event": "worker.job.lease_lost"},
        )
        return ProcessingOutcome(
            job_id=job.id,
            status="lease_lost",
            attempts=job.attempt_count,
            error=str(error),
        )
