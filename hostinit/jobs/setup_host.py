"""Host setup job: drive one host from a fresh instance to provisioned.

One run is one provisioning attempt:

1. load the host (missing host -> HostNotFoundError);
2. skip hosts that are already running or provisioned;
3. bump and persist the attempt counter;
4. resolve DNS, fire the provider's on-up hook, install the agent according
   to the bootstrap method, copy distro setup/teardown scripts, and for
   spawn hosts load the CLI client;
5. classify the outcome.

Hosts often need a few attempts before SSH works, so failures are retried
while ``provision_attempts <= provision_retry_limit`` and the host is still
provisioning. The job never enqueues anything itself: a retry shows up as
``SetupResult.retry_after`` and ``hostinit.jobs.worker`` does the enqueue.
"""

import asyncio
import logging
import posixpath
import time
from dataclasses import dataclass
from enum import Enum

from hostinit.agent import AgentInstaller
from hostinit.client import ClientDeployer
from hostinit.credentials import CredentialProvisioner
from hostinit.errors import (
    ConfigurationError,
    HostNotFoundError,
    PersistenceError,
    ProvisioningCancelled,
    ProvisioningError,
    log_advisory,
)
from hostinit.host.types import BootstrapMethod, Host, HostStatus
from hostinit.remote.scripts import ScriptDeployer

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    SKIP = "skip"
    PROVISIONED = "provisioned"
    USERDATA_PENDING = "userdata-pending"
    RETRY_SCHEDULED = "retry-scheduled"
    FAILED_TERMINAL = "failed-terminal"


@dataclass
class SetupResult:
    """What one attempt decided; ``retry_after`` is set only for retries."""

    outcome: Outcome
    host: Host
    error: Exception | None = None
    retry_after: float | None = None


def should_retry_provisioning(host: Host, retry_limit: int) -> bool:
    return (
        host.provision_attempts <= retry_limit
        and host.status == HostStatus.PROVISIONING
        and not host.provisioned
    )


class SetupHostJob:
    """The provisioning state machine for a single host."""

    def __init__(self, env, host_id=None, host=None, job_id=None, cancel: asyncio.Event | None = None):
        if host is None and not host_id:
            raise ValueError("SetupHostJob needs a host or a host id")
        self.env = env
        self.settings = env.settings
        self.hosts = env.hosts
        self.events = env.events
        self.host = host
        self.host_id = host.id if host is not None else host_id
        self.job_id = job_id or f"provisioning-setup-host.{self.host_id}"
        self.cancel = cancel

        self.scripts = ScriptDeployer(env.executor, env.settings)
        self.credentials = CredentialProvisioner(env.executor, env.settings, env.credentials)
        self.agent = AgentInstaller(env.executor, env.settings, env.hosts, self.credentials, self.scripts)
        self.client = ClientDeployer(env.executor, env.settings, env.users)

    async def run(self) -> SetupResult:
        host = self._load_host()
        if host.status == HostStatus.RUNNING or host.provisioned:
            logger.info(f"[{self.job_id}] Skipping setup because host {host.id} is already set up")
            return SetupResult(Outcome.SKIP, host)

        started = time.monotonic()
        logger.info(f"[{self.job_id}] Attempting to set up host {host.id} ({host.distro.id}, DNS '{host.host}')")
        self._increment_attempts(host)

        try:
            await self._provision(host)
        except Exception as err:
            return self._handle_failure(host, err)

        if host.bootstrap_method == BootstrapMethod.USER_DATA:
            return SetupResult(Outcome.USERDATA_PENDING, host)

        logger.info(
            f"[{self.job_id}] Successfully provisioned host {host.id} ({host.distro.id}, provider {host.provider}) "
            f"after {host.provision_attempts} attempt(s) in {time.monotonic() - started:.1f}s"
        )
        return SetupResult(Outcome.PROVISIONED, host)

    def _load_host(self) -> Host:
        if self.host is None:
            self.host = self.hosts.load(self.host_id)
            if self.host is None:
                raise HostNotFoundError(f"could not find host for job {self.job_id}", host_id=self.host_id)
        return self.host

    def _increment_attempts(self, host: Host) -> None:
        try:
            self.hosts.inc_provision_attempts(host)
        except PersistenceError as e:
            log_advisory(
                logger,
                e,
                f"[{self.job_id}] Increment of provisioning attempts failed for host {host.id} "
                f"(attempt {host.provision_attempts})",
                level=logging.CRITICAL,
            )

    def _check_cancelled(self, host: Host, step: str) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise ProvisioningCancelled(f"setup canceled before {step}", host_id=host.id, operation=step)

    # ── Attempt ────────────────────────────────────────────────────

    async def _provision(self, host: Host) -> None:
        await self._run_host_setup(host)
        if host.bootstrap_method == BootstrapMethod.USER_DATA:
            return

        opts = host.provision_options
        if opts is not None and opts.load_cli:
            self._check_cancelled(host, "load client")
            await self._load_client(host)

        self._check_cancelled(host, "mark provisioned")
        self.hosts.mark_as_provisioned(host)
        self.events.log_provisioned(host.id)

    async def _run_host_setup(self, host: Host) -> None:
        self._check_cancelled(host, "set DNS name")
        await self._set_dns_name(host)

        self._check_cancelled(host, "on-up callback")
        await self.env.cloud.on_up(host)

        self._check_cancelled(host, "install agent")
        await self.agent.install(host)
        if host.bootstrap_method == BootstrapMethod.USER_DATA:
            return

        # Task-spawned hosts never get distro scripts
        if host.spawned_by_task:
            return

        distro = host.distro
        if distro.setup:
            self._check_cancelled(host, "copy setup script")
            await self.scripts.deploy(host, distro.setup, posixpath.join("~", distro.setup_script_name()))
        if distro.teardown:
            self._check_cancelled(host, "copy teardown script")
            await self.scripts.deploy(host, distro.teardown, posixpath.join("~", distro.teardown_script_name()))

    async def _set_dns_name(self, host: Host) -> None:
        if host.host:
            return
        dns_name = await self.env.cloud.get_dns_name(host)
        if not dns_name:
            # DNS name not required if IP address set
            if host.ip:
                return
            raise ProvisioningError(
                "instance is running but not returning a DNS name or IP address",
                host_id=host.id,
                operation="set DNS name",
            )
        self.hosts.set_dns_name(host, dns_name)

    async def _load_client(self, host: Host) -> None:
        logger.info(f"[{self.job_id}] Uploading client binary to host {host.id}")
        try:
            result = await self.client.load_client(host)
            if host.distro.setup and not host.spawned_by_task:
                logger.info(f"[{self.job_id}] Running setup script for spawn host {host.id}")
                await self.client.run_spawn_setup(host)
        except Exception:
            self._set_unprovisioned(host)
            raise

        opts = host.provision_options
        if opts.owner_id and opts.task_id:
            logger.info(f"[{self.job_id}] Fetching data for task {opts.task_id} on host {host.id}")
            try:
                await self.client.fetch_task_data(host, opts.task_id, result)
            except ProvisioningError as e:
                log_advisory(logger, e, f"[{self.job_id}] Failed to fetch data for task {opts.task_id} onto host {host.id}")

    # ── Failure classification ─────────────────────────────────────

    def _handle_failure(self, host: Host, err: Exception) -> SetupResult:
        self.events.log_provision_error(host.id)
        logger.error(
            f"[{self.job_id}] Provisioning host {host.id} ({host.distro.id}) encountered error "
            f"on attempt {host.provision_attempts}: {err}"
        )

        if host.bootstrap_method == BootstrapMethod.SSH:
            try:
                self.credentials.discard(host)
            except PersistenceError as e:
                log_advisory(logger, e, f"[{self.job_id}] Could not delete agent credentials for host {host.id}")

        retryable = not isinstance(err, ConfigurationError)
        if retryable and should_retry_provisioning(host, self.settings.provision_retry_limit):
            logger.info(f"[{self.job_id}] Retrying provisioning of host {host.id} (attempt {host.provision_attempts})")
            return SetupResult(Outcome.RETRY_SCHEDULED, host, err, retry_after=self.settings.retry_delay)

        if host.status != HostStatus.UNPROVISIONED:
            self._set_unprovisioned(host)
        self.events.log_provision_failed(host.id, getattr(err, "output", ""))
        return SetupResult(Outcome.FAILED_TERMINAL, host, err)

    def _set_unprovisioned(self, host: Host) -> None:
        try:
            self.hosts.set_unprovisioned(host)
        except PersistenceError as e:
            log_advisory(logger, e, f"[{self.job_id}] Failed setting host {host.id} unprovisioned")
