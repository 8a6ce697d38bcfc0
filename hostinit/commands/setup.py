"""Setup command: provision hosts from a hosts file and run the worker until done."""

import asyncio
import logging
import sys

from hostinit.cloud import make_cloud_manager
from hostinit.config import load_settings
from hostinit.credentials import CredentialStore
from hostinit.env import ProvisionEnv
from hostinit.errors import ConfigurationError, DuplicateJobError
from hostinit.host.store import HostStore, UserStore
from hostinit.jobs.queue import JobQueue, setup_host_job
from hostinit.jobs.setup_host import Outcome
from hostinit.jobs.worker import run_worker
from hostinit.logging_setup import setup_worker_logging
from hostinit.remote.executor import BoundedRemoteExecutor

logger = logging.getLogger(__name__)


def handle_setup(args):
    """Handle the setup command."""
    setup_worker_logging(verbose=getattr(args, "verbose", False))
    ok = asyncio.run(_handle_setup(args))
    if not ok:
        sys.exit(1)


def build_env(args) -> ProvisionEnv:
    settings = load_settings(args.config)
    hosts = HostStore.from_file(args.hosts)
    credentials = CredentialStore(args.credentials)
    if args.dry_run:
        # Nothing is written back in dry-run mode
        hosts.path = None
        credentials.path = None
    return ProvisionEnv(
        settings=settings,
        hosts=hosts,
        users=UserStore.from_file(args.hosts),
        credentials=credentials,
        executor=BoundedRemoteExecutor(output_limit=settings.output_limit, dry_run=args.dry_run),
        cloud=make_cloud_manager(settings, dry_run=args.dry_run),
        queue=JobQueue(started=not args.no_retry),
    )


async def _handle_setup(args) -> bool:
    try:
        env = build_env(args)
    except ConfigurationError as e:
        logger.error(f"Error: {e}")
        return False

    host_ids = args.host_ids or [h.id for h in env.hosts.all()]
    if not host_ids:
        logger.info("No hosts to set up.")
        return True

    for host_id in host_ids:
        host = env.hosts.load(host_id)
        if host is None:
            logger.error(f"Error: host '{host_id}' not found in {args.hosts}")
            return False
        try:
            env.queue.put(setup_host_job(host.id, f"attempt-{host.provision_attempts}"))
        except DuplicateJobError:
            logger.info(f"Host '{host_id}' listed twice, queued once")

    logger.info(f"Setting up {len(env.queue)} host(s) with {args.workers} worker(s)")
    results = await run_worker(env, workers=args.workers)

    logger.info("")
    failed = []
    for result in results:
        logger.info(f"  {result.host.id}: {result.outcome.value} (attempts: {result.host.provision_attempts})")
        if result.outcome == Outcome.FAILED_TERMINAL:
            failed.append(result.host.id)

    if failed:
        logger.info(f"\nFailed to provision {len(failed)} host(s): {', '.join(failed)}")
        return False
    return True


def register_setup_command(subparsers):
    """Register the setup subcommand."""
    parser = subparsers.add_parser("setup", help="Provision hosts over SSH")
    parser.add_argument("host_ids", nargs="*", help="Host ids to set up (default: every host in the file)")
    parser.add_argument("--hosts", default="hosts.yaml", help="Hosts/users YAML file (default: hosts.yaml)")
    parser.add_argument("--config", default="config.yaml", help="Settings YAML file (default: config.yaml)")
    parser.add_argument("--credentials", default=None, help="YAML file to persist agent credentials to")
    parser.add_argument("--workers", type=int, default=4, help="Hosts provisioned in parallel")
    parser.add_argument("--no-retry", action="store_true", help="Do not requeue failed attempts")
    parser.add_argument("--dry-run", action="store_true", help="Print commands without executing")
    parser.set_defaults(func=handle_setup)
