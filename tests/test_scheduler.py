"""Unit tests for the worker pool.

Tests the WorkerPool including:
- One interval job per worker slot plus a maintenance job
- Slots never overlap themselves (max_instances=1)
- Start/shutdown lifecycle
- Error isolation in slot and maintenance ticks
- Synchronous trigger_now drain
"""

import threading
import time
from unittest.mock import MagicMock, Mock

import pytest

from mailrelay.config.models import WorkerConfig
from mailrelay.notifications.models import ProcessingOutcome
from mailrelay.scheduler import WorkerPool
from mailrelay.scheduler.service import MAINTENANCE_JOB_ID


@pytest.fixture
def worker():
    mock_worker = Mock()
    mock_worker.drain.return_value = []
    return mock_worker


@pytest.fixture
def queue():
    return MagicMock()


class TestWorkerPool:
    """Test suite for WorkerPool."""

    def test_initialization(self, worker, queue):
        """Pool starts stopped with one id per slot."""
        shutdown_event = threading.Event()

        pool = WorkerPool(worker, queue, WorkerConfig(concurrency=3), shutdown_event)

        assert not pool.is_running()
        assert pool.shutdown_event is shutdown_event
        ids = pool.worker_ids()
        assert len(ids) == 3
        assert len(set(ids)) == 3
        assert ids[0].endswith(":1")

    def test_start_registers_slots_and_maintenance(self, worker, queue):
        """start() adds one non-overlapping job per slot plus maintenance."""
        pool = WorkerPool(worker, queue, WorkerConfig(concurrency=2, poll_interval="30s"))

        pool.start()
        try:
            jobs = pool.scheduler.get_jobs()
            assert len(jobs) == 3

            slot_job = pool.scheduler.get_job(f"slot-{pool.worker_ids()[0]}")
            assert slot_job.max_instances == 1
            assert slot_job.coalesce is True
            assert pool.scheduler.get_job(MAINTENANCE_JOB_ID) is not None
            assert pool.get_next_maintenance_time() is not None
        finally:
            pool.shutdown(wait=False)

    def test_start_and_shutdown(self, worker, queue):
        """Lifecycle toggles is_running and sets the shutdown event."""
        shutdown_event = threading.Event()
        pool = WorkerPool(worker, queue, WorkerConfig(concurrency=1), shutdown_event)

        pool.start()
        assert pool.is_running()

        time.sleep(0.1)

        pool.shutdown(wait=False)
        assert not pool.is_running()
        assert shutdown_event.is_set()

    def test_slots_run_immediately(self, worker, queue):
        """Every slot drains once right after start."""
        pool = WorkerPool(worker, queue, WorkerConfig(concurrency=2, poll_interval="30s"))

        pool.start()
        time.sleep(1.0)
        pool.shutdown(wait=True)

        drained_by = {call.args[0] for call in worker.drain.call_args_list}
        assert drained_by == set(pool.worker_ids())
        queue.requeue_expired_leases.assert_called()
        queue.promote_due_jobs.assert_called()

    def test_next_maintenance_time_before_start(self, worker, queue):
        assert WorkerPool(worker, queue).get_next_maintenance_time() is None


class TestTicks:
    """Tests for the functions the scheduler runs."""

    def test_run_slot_drains_batch(self, worker, queue):
        worker.drain.return_value = [
            ProcessingOutcome(job_id="j1", status="completed", attempts=1),
            ProcessingOutcome(job_id="j2", status="failed", attempts=5),
        ]
        pool = WorkerPool(worker, queue, WorkerConfig(batch_size=10))

        assert pool.run_slot("host:1:1") == 2
        worker.drain.assert_called_once_with("host:1:1", limit=10)

    def test_run_slot_logs_and_survives_errors(self, worker, queue, caplog):
        worker.drain.side_effect = RuntimeError("database is locked")
        pool = WorkerPool(worker, queue)

        assert pool.run_slot("host:1:1") == 0
        assert "database is locked" in caplog.text

    def test_run_maintenance(self, worker, queue):
        WorkerPool(worker, queue).run_maintenance()

        queue.requeue_expired_leases.assert_called_once()
        queue.promote_due_jobs.assert_called_once()

    def test_run_maintenance_survives_errors(self, worker, queue, caplog):
        queue.requeue_expired_leases.side_effect = RuntimeError("boom")

        WorkerPool(worker, queue).run_maintenance()

        assert "Queue maintenance failed" in caplog.text

    def test_trigger_now(self, worker, queue):
        """trigger_now recovers leases, promotes due jobs, then drains."""
        outcome = ProcessingOutcome(job_id="j1", status="completed", attempts=1)
        worker.drain.return_value = [outcome]
        pool = WorkerPool(worker, queue)

        assert pool.trigger_now() == [outcome]
        queue.requeue_expired_leases.assert_called_once()
        queue.promote_due_jobs.assert_called_once()
        assert worker.drain.call_args.args[0].endswith(":manual")
