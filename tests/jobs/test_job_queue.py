"""Tests for job records and the in-process queue."""

from datetime import datetime, timedelta, timezone

import pytest

from hostinit.errors import DuplicateJobError
from hostinit.jobs.queue import Job, JobQueue, setup_host_job

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_setup_host_job_id():
    job = setup_host_job("h-1", "attempt-3")
    assert job.job_id == "provisioning-setup-host.h-1.attempt-3"
    assert job.host_id == "h-1"
    assert job.not_before is None


def test_setup_host_job_delay():
    job = setup_host_job("h-1", "attempt-1", delay=60, now=NOW)
    assert job.not_before == NOW + timedelta(minutes=1)
    assert not job.is_due(NOW)
    assert job.is_due(NOW + timedelta(minutes=1))


def test_put_rejects_duplicates():
    queue = JobQueue()
    queue.put(setup_host_job("h-1", "attempt-0"))
    with pytest.raises(DuplicateJobError):
        queue.put(setup_host_job("h-1", "attempt-0"))


def test_ids_are_never_reused():
    queue = JobQueue()
    queue.put(setup_host_job("h-1", "attempt-0"))
    assert len(queue.ready()) == 1
    with pytest.raises(DuplicateJobError):
        queue.put(setup_host_job("h-1", "attempt-0"))


def test_ready_returns_only_due_jobs():
    queue = JobQueue()
    queue.put(setup_host_job("h-1", "attempt-0"))
    queue.put(setup_host_job("h-2", "attempt-4", delay=60, now=NOW))

    assert [j.host_id for j in queue.ready(NOW)] == ["h-1"]
    assert len(queue) == 1
    assert queue.next_due() == NOW + timedelta(seconds=60)
    assert [j.host_id for j in queue.ready(NOW + timedelta(seconds=61))] == ["h-2"]
    assert queue.next_due() is None


def test_ready_orders_by_priority():
    queue = JobQueue()
    queue.put(Job(job_id="low", host_id="h-1", priority=1))
    queue.put(Job(job_id="high", host_id="h-2", priority=5))
    assert [j.job_id for j in queue.ready(NOW)] == ["high", "low"]


def test_start_stop():
    queue = JobQueue(started=False)
    assert not queue.started
    queue.start()
    assert queue.started
    queue.stop()
    assert not queue.started
