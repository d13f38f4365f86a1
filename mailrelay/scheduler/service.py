"""Worker pool that drains the notification queue on a schedule."""

import os
import socket
import threading
from datetime import datetime, timezone
from typing import List, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mailrelay.config.models import WorkerConfig
from mailrelay.logging import get_logger
from mailrelay.logging.context import log_context
from mailrelay.notifications.models import ProcessingOutcome
from mailrelay.notifications.worker import NotificationWorker
from mailrelay.queue import NotificationQueue

logger = get_logger(__name__, component="scheduler")

MAINTENANCE_JOB_ID = "queue-maintenance"


class WorkerPool:
    """
    Runs ``worker.concurrency`` queue consumers on an APScheduler thread pool.

    Each worker slot is an interval job (``max_instances=1``, ``coalesce``)
    that drains up to ``batch_size`` jobs per tick, so at most
    ``concurrency`` deliveries are in flight. A separate maintenance job
    requeues jobs with expired leases and promotes delayed jobs.
    """

    def __init__(
        self,
        worker: NotificationWorker,
        queue: NotificationQueue,
        config: Optional[WorkerConfig] = None,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the worker pool.

        Args:
            worker: Processes individual jobs
            queue: Queue used for maintenance
            config: Pool sizing and intervals
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.worker = worker
        self.queue = queue
        self.config = config or WorkerConfig()
        self.shutdown_event = shutdown_event
        self.worker_prefix = f"{socket.gethostname()}:{os.getpid()}"

        poll_interval = self.config.poll_interval_seconds

        # One extra thread so maintenance never waits behind busy slots
        self.scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(self.config.concurrency + 1)},
            job_defaults={
                "max_instances": 1,  # A slot never overlaps itself
                "coalesce": True,
                "misfire_grace_time": max(int(poll_interval), 1),
            },
            timezone=timezone.utc,
        )

    def worker_ids(self) -> List[str]:
        return [f"{self.worker_prefix}:{slot}" for slot in range(1, self.config.concurrency + 1)]

    def start(self) -> None:
        """
        Start the scheduler and register one job per worker slot plus maintenance.

        Every job runs once immediately, then at its interval.
        """
        now = datetime.now(timezone.utc)

        for worker_id in self.worker_ids():
            self.scheduler.add_job(
                func=self.run_slot,
                args=[worker_id],
                trigger=IntervalTrigger(
                    seconds=self.config.poll_interval_seconds, timezone=timezone.utc
                ),
                id=f"slot-{worker_id}",
                name=f"Notification worker {worker_id}",
                replace_existing=True,
                next_run_time=now,
            )

        self.scheduler.add_job(
            func=self.run_maintenance,
            trigger=IntervalTrigger(
                seconds=self.config.maintenance_interval_seconds, timezone=timezone.utc
            ),
            id=MAINTENANCE_JOB_ID,
            name="Queue maintenance",
            replace_existing=True,
            next_run_time=now,
        )

        self.scheduler.start()

        logger.info(
            f"Worker pool started with {self.config.concurrency} worker(s)",
            extra={
                "event": "scheduler.started",
                "concurrency": self.config.concurrency,
                "poll_interval_seconds": self.config.poll_interval_seconds,
                "maintenance_interval_seconds": self.config.maintenance_interval_seconds,
            },
        )

    def run_slot(self, worker_id: str) -> int:
        """
        Drain up to ``batch_size`` jobs as ``worker_id``.

        Errors are logged and the slot runs again on its next tick; any job
        it held is recovered when its lease expires.

        Returns:
            Number of jobs processed
        """
        with log_context(worker_id=worker_id):
            try:
                outcomes = self.worker.drain(worker_id, limit=self.config.batch_size)
            except Exception as e:
                logger.error(
                    f"Worker {worker_id} tick failed: {e}",
                    exc_info=True,
                    extra={"event": "scheduler.slot.error", "error_type": type(e).__name__},
                )
                return 0

        if outcomes:
            logger.debug(
                f"Worker {worker_id} processed {len(outcomes)} job(s)",
                extra={"event": "scheduler.slot.drained", "processed": len(outcomes)},
            )
        return len(outcomes)

    def run_maintenance(self) -> None:
        """Requeue jobs with expired leases and promote delayed jobs that are due."""
        try:
            self.queue.requeue_expired_leases()
            self.queue.promote_due_jobs()
        except Exception as e:
            logger.error(
                f"Queue maintenance failed: {e}",
                exc_info=True,
                extra={"event": "scheduler.maintenance.error", "error_type": type(e).__name__},
            )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the pool.

        Args:
            wait: If True, wait for in-flight jobs to finish before returning
        """
        logger.info(
            "Shutting down worker pool",
            extra={
                "event": "scheduler.stopping",
                "wait_for_jobs": wait,
            },
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Worker pool shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> List[ProcessingOutcome]:
        """
        Run maintenance and drain the queue once, synchronously in this thread.

        Useful for manual runs and administrative commands. Jobs still in
        backoff are left for a later run.

        Returns:
            Outcomes of every job processed
        """
        logger.info("Triggering immediate queue drain", extra={"event": "scheduler.trigger_now"})
        self.queue.requeue_expired_leases()
        self.queue.promote_due_jobs()

        worker_id = f"{self.worker_prefix}:manual"
        with log_context(worker_id=worker_id):
            return self.worker.drain(worker_id)

    def is_running(self) -> bool:
        """
        Check if the pool is currently running.

        Returns:
            True if scheduler is running, False otherwise
        """
        return self.scheduler.running

    def get_next_maintenance_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(MAINTENANCE_JOB_ID)
        return job.next_run_time if job else None
