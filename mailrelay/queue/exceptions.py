"""Notification queue exceptions."""


class QueueError(Exception):
    """Base exception for queue operations."""

    pass


class LeaseLostError(QueueError):
    """Raised when a worker tries to finish a job it no longer holds.

    Happens when the lease expired and the job was requeued (and possibly
    claimed by another worker) before the outcome was reported.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Lease on job {job_id} is no longer held")


class JobNotFoundError(QueueError):
    """Raised when an operator action names a job that doesn't exist."""

    def __init__(self, job_id: str, detail: str = "not found"):
        self.job_id = job_id
        super().__init__(f"Job {job_id} {detail}")
