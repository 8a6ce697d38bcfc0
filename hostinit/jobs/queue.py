"""Job records and an in-process, at-least-once job queue with delayed delivery."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from hostinit.errors import DuplicateJobError
from hostinit.host.types import utcnow

logger = logging.getLogger(__name__)

SETUP_HOST_JOB_NAME = "provisioning-setup-host"


@dataclass
class Job:
    """Unit of work the queue schedules."""

    job_id: str
    host_id: str
    kind: str = SETUP_HOST_JOB_NAME
    priority: int = 1
    not_before: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        return self.not_before is None or self.not_before <= now


def setup_host_job(host_id: str, tag: str, delay: float | None = None, now: datetime | None = None) -> Job:
    """Build the ``<kind>.<host id>.<tag>`` job for one provisioning attempt."""
    not_before = None
    if delay:
        not_before = (now or utcnow()) + timedelta(seconds=delay)
    return Job(
        job_id=f"{SETUP_HOST_JOB_NAME}.{host_id}.{tag}",
        host_id=host_id,
        not_before=not_before,
    )


class JobQueue:
    """Pending jobs keyed by id; ids are never reused, which dedups redelivery."""

    def __init__(self, started=True):
        self.started = started
        self._pending: dict[str, Job] = {}
        self._seen: set[str] = set()

    def start(self):
        self.started = True

    def stop(self):
        self.started = False

    def put(self, job: Job) -> None:
        if job.job_id in self._seen:
            raise DuplicateJobError(f"job '{job.job_id}' already exists")
        self._seen.add(job.job_id)
        self._pending[job.job_id] = job
        when = job.not_before.isoformat() if job.not_before else "now"
        logger.debug(f"Queued {job.job_id} (not before {when})")

    def ready(self, now: datetime | None = None) -> list[Job]:
        """Remove and return every due job, highest priority first."""
        now = now or utcnow()
        due = [j for j in self._pending.values() if j.is_due(now)]
        for job in due:
            del self._pending[job.job_id]
        due.sort(key=lambda j: (-j.priority, j.not_before or now))
        return due

    def next_due(self) -> datetime | None:
        """Earliest not-before among pending jobs (None when empty)."""
        if not self._pending:
            return None
        return min((j.not_before or utcnow()) for j in self._pending.values())

    def pending(self) -> list[Job]:
        return list(self._pending.values())

    def __len__(self):
        return len(self._pending)
