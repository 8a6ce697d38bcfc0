"""Provisioning jobs: queue records, the host setup state machine, the worker."""

from hostinit.jobs.queue import SETUP_HOST_JOB_NAME, Job, JobQueue, setup_host_job
from hostinit.jobs.setup_host import Outcome, SetupHostJob, SetupResult, should_retry_provisioning
from hostinit.jobs.worker import requeue, run_setup_host, run_worker

__all__ = [
    "SETUP_HOST_JOB_NAME",
    "Job",
    "JobQueue",
    "Outcome",
    "SetupHostJob",
    "SetupResult",
    "requeue",
    "run_setup_host",
    "run_worker",
    "setup_host_job",
    "should_retry_provisioning",
]
