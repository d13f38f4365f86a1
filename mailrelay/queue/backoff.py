"""Retry delay calculation for failed deliveries."""

from mailrelay.domain.models import BackoffKind, NotificationJob

DEFAULT_MAX_BACKOFF_SECONDS = 600.0


class BackoffPolicy:
    """Delay before the next attempt of a job.

    Exponential: ``base * 2 ** (attempt - 1)``; fixed: ``base`` every time.
    Both are capped at ``max_delay_seconds``.

    Args:
        backoff_type: "exponential" or "fixed"
        base_delay_seconds: Delay after the first failed attempt
        max_delay_seconds: Upper bound for any single delay
    """

    def __init__(
        self,
        backoff_type: str = BackoffKind.EXPONENTIAL.value,
        base_delay_seconds: float = 3.0,
        max_delay_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
    ):
        if base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must not be negative")
        if max_delay_seconds <= 0:
            raise ValueError("max_delay_seconds must be positive")

        self.backoff_type = BackoffKind(backoff_type)
        self.base_delay_seconds = float(base_delay_seconds)
        self.max_delay_seconds = float(max_delay_seconds)

    @classmethod
    def for_job(
        cls, job: NotificationJob, max_delay_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS
    ) -> "BackoffPolicy":
        """Build the policy recorded on a job."""
        return cls(
            backoff_type=job.backoff_type.value,
            base_delay_seconds=job.backoff_delay_ms / 1000.0,
            max_delay_seconds=max_delay_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt.

        Args:
            attempt: Number of the attempt that just failed

        Returns:
            Delay in seconds
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")

        if self.backoff_type == BackoffKind.FIXED:
            delay = self.base_delay_seconds
        else:
            # Exponent bounded so huge attempt numbers can't overflow
            delay = self.base_delay_seconds * (2 ** min(attempt - 1, 32))

        return min(delay, self.max_delay_seconds)

    def __repr__(self) -> str:
        return (
            f"BackoffPolicy(type={self.backoff_type.value}, base={self.base_delay_seconds}s, "
            f"max={self.max_delay_seconds}s)"
        )
