"""Tests for scoped logging context."""

import threading

import pytest

from mailrelay.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


def test_empty_by_default():
    """Context starts empty."""
    assert get_log_context() == {}


def test_push_and_pop():
    """Pushed fields are visible until popped."""
    token = push_log_context(job_id="job-1", worker_id="host:1:1")
    assert get_log_context() == {"job_id": "job-1", "worker_id": "host:1:1"}

    pop_log_context(token)
    assert get_log_context() == {}


def test_none_values_skipped():
    """Optional identifiers can be passed unconditionally."""
    token = push_log_context(job_id="job-1", owner_id=None)
    assert get_log_context() == {"job_id": "job-1"}
    pop_log_context(token)


def test_nested_pushes_restore_in_reverse():
    """Each pop restores the previous layer, including overwritten keys."""
    outer = push_log_context(worker_id="w1")
    inner = push_log_context(job_id="job-1", worker_id="w2")
    assert get_log_context() == {"worker_id": "w2", "job_id": "job-1"}

    pop_log_context(inner)
    assert get_log_context() == {"worker_id": "w1"}

    pop_log_context(outer)
    assert get_log_context() == {}


def test_context_manager_nesting():
    """log_context scopes fields to the with block."""
    with log_context(worker_id="w1"):
        with log_context(job_id="job-1"):
            assert get_log_context() == {"worker_id": "w1", "job_id": "job-1"}
        assert get_log_context() == {"worker_id": "w1"}

    assert get_log_context() == {}


def test_context_manager_restores_on_exception():
    """Context is restored when the block raises."""
    with pytest.raises(ValueError):
        with log_context(job_id="job-1"):
            raise ValueError("boom")

    assert get_log_context() == {}


def test_clear():
    """clear_log_context drops every field."""
    push_log_context(job_id="job-1", worker_id="w1")
    clear_log_context()
    assert get_log_context() == {}


def test_returned_context_is_a_copy():
    """Mutating the returned dict does not leak into the scope."""
    with log_context(job_id="job-1"):
        context = get_log_context()
        context["job_id"] = "changed"
        assert get_log_context() == {"job_id": "job-1"}


def test_threads_have_independent_context():
    """Worker threads never see each other's job identifiers."""
    seen = {}
    ready = threading.Barrier(2)

    def run(name):
        with log_context(worker_id=name):
            ready.wait()
            seen[name] = get_log_context()

    threads = [threading.Thread(target=run, args=(name,)) for name in ("w1", "w2")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert seen == {"w1": {"worker_id": "w1"}, "w2": {"worker_id": "w2"}}
    assert get_log_context() == {}
