"""Job driver and worker pool.

``run_setup_host`` runs one job and turns a retry decision into a delayed
follow-up job. ``run_worker`` drains the queue, running distinct hosts in
parallel under a semaphore.
"""

import asyncio
import logging

from hostinit.errors import HostNotFoundError
from hostinit.host.types import utcnow
from hostinit.jobs.queue import Job, setup_host_job
from hostinit.jobs.setup_host import Outcome, SetupHostJob, SetupResult

logger = logging.getLogger(__name__)


def requeue(queue, result: SetupResult, now=None) -> Job | None:
    """Submit the follow-up attempt for a retry decision.

    Only submits when the queue is started; enqueue errors are logged and not
    retried.
    """
    if result.retry_after is None:
        return None
    host = result.host
    if not queue.started:
        logger.info(f"Queue not started, not requeueing setup for host {host.id}")
        return None

    job = setup_host_job(host.id, f"attempt-{host.provision_attempts}", delay=result.retry_after, now=now)
    try:
        queue.put(job)
    except Exception as e:
        logger.critical(
            f"Failed to requeue setup job for host {host.id} ({host.distro.id}, "
            f"attempt {host.provision_attempts}): {e}"
        )
        return None
    when = job.not_before.isoformat() if job.not_before else "now"
    logger.info(f"Requeued {job.job_id} to run after {when}")
    return job


async def run_setup_host(env, job: Job, cancel: asyncio.Event | None = None) -> SetupResult | None:
    """Run one setup job, then requeue it if it asked for a retry."""
    setup = SetupHostJob(env, host_id=job.host_id, job_id=job.job_id, cancel=cancel)
    try:
        result = await setup.run()
    except HostNotFoundError as e:
        logger.error(f"[{job.job_id}] {e}")
        return None

    if result.outcome == Outcome.FAILED_TERMINAL:
        logger.error(f"[{job.job_id}] Host {result.host.id} failed provisioning: {result.error}")
    requeue(env.queue, result)
    return result


async def run_worker(env, workers: int = 4, cancel: asyncio.Event | None = None) -> list[SetupResult]:
    """Process jobs until the queue is empty, sleeping until delayed jobs are due.

    Returns every SetupResult produced, in completion order per batch.
    """
    sem = asyncio.Semaphore(workers)
    results: list[SetupResult] = []

    async def _run_with_semaphore(job):
        async with sem:
            return await run_setup_host(env, job, cancel=cancel)

    while True:
        if cancel is not None and cancel.is_set():
            logger.info("Worker cancelled, leaving remaining jobs queued")
            break

        batch = env.queue.ready()
        if batch:
            done = await asyncio.gather(*(_run_with_semaphore(j) for j in batch), return_exceptions=True)
            for job, res in zip(batch, done):
                if isinstance(res, Exception):
                    logger.error(f"[{job.job_id}] Job crashed: {res}")
                elif res is not None:
                    results.append(res)
            continue

        next_due = env.queue.next_due()
        if next_due is None:
            break
        delay = max(0.0, (next_due - utcnow()).total_seconds())
        logger.info(f"Waiting {delay:.0f}s for {len(env.queue)} delayed job(s)")
        await _sleep(delay, cancel)

    return results


async def _sleep(delay, cancel):
    if cancel is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except TimeoutError:
        pass
