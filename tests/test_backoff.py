"""Tests for retry backoff calculation."""

from datetime import datetime, timezone

import pytest

from mailrelay.domain.models import EmailPayload, JobKind, NotificationJob
from mailrelay.queue import BackoffPolicy


class TestExponentialBackoff:
    """Tests for the exponential strategy."""

    def test_doubles_from_base(self):
        policy = BackoffPolicy("exponential", base_delay_seconds=3, max_delay_seconds=600)

        assert [policy.delay_for(n) for n in range(1, 5)] == [3, 6, 12, 24]

    def test_strictly_increasing_until_cap(self):
        policy = BackoffPolicy("exponential", base_delay_seconds=3, max_delay_seconds=600)
        delays = [policy.delay_for(n) for n in range(1, 12)]

        capped_from = delays.index(600)
        assert all(a < b for a, b in zip(delays[:capped_from], delays[1 : capped_from + 1]))
        assert all(d == 600 for d in delays[capped_from:])

    def test_huge_attempt_number_is_capped(self):
        policy = BackoffPolicy("exponential", base_delay_seconds=3, max_delay_seconds=600)
        assert policy.delay_for(10_000) == 600


class TestFixedBackoff:
    """Tests for the fixed strategy."""

    def test_constant_delay(self):
        policy = BackoffPolicy("fixed", base_delay_seconds=5, max_delay_seconds=600)
        assert {policy.delay_for(n) for n in range(1, 10)} == {5}

    def test_fixed_delay_still_capped(self):
        policy = BackoffPolicy("fixed", base_delay_seconds=900, max_delay_seconds=600)
        assert policy.delay_for(1) == 600


class TestPolicyConstruction:
    """Tests for validation and building from jobs."""

    def test_attempt_must_be_positive(self):
        with pytest.raises(ValueError):
            BackoffPolicy().delay_for(0)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            BackoffPolicy("linear")

    def test_negative_base_rejected(self):
        with pytest.raises(ValueError):
            BackoffPolicy(base_delay_seconds=-1)

    def test_for_job_reads_job_policy(self):
        now = datetime(2025, 11, 3, tzinfo=timezone.utc)
        job = NotificationJob(
            id="job-1",
            job_kind=JobKind.SEND_EMAIL,
            payload=EmailPayload(to="ana@example.com", subject="Hi", template="welcome"),
            backoff_type="fixed",
            backoff_delay_ms=1500,
            available_at=now,
            enqueued_at=now,
            updated_at=now,
        )

        policy = BackoffPolicy.for_job(job, max_delay_seconds=60)

        assert policy.delay_for(3) == 1.5
        assert policy.max_delay_seconds == 60
