"""Remote agent installation, one branch per bootstrap method.

The agent itself is a black box here: we only put its credentials on the
host, download its binary and ask it to (re)install its own service.
"""

import logging
import posixpath
import secrets
import shlex

from hostinit.config import AgentSettings, Settings
from hostinit.credentials import CredentialProvisioner, credentials_path
from hostinit.errors import PersistenceError, log_advisory
from hostinit.host.store import HostStore
from hostinit.host.types import BootstrapMethod, Host
from hostinit.redact import register_secret
from hostinit.remote.executor import (
    BINARY_DOWNLOAD_TIMEOUT,
    FILE_TRANSFER_TIMEOUT,
    BoundedRemoteExecutor,
    run_on_host,
)
from hostinit.remote.scripts import ScriptDeployer

logger = logging.getLogger(__name__)

SERVICE_USER_SCRIPT = "setup-user.ps1"


def agent_download_url(host: Host, agent: AgentSettings) -> str:
    return f"{agent.binaries_url.rstrip('/')}/{agent.version}/{host.distro.arch}/agent.tar.gz"


def fetch_and_reinstall_agent_command(host: Host, agent: AgentSettings) -> str:
    """Download the agent archive and force-reinstall its service."""
    url = shlex.quote(agent_download_url(host, agent))
    creds = shlex.quote(credentials_path(host, agent))
    if host.distro.is_windows():
        install_dir = shlex.quote(agent.windows_install_dir)
        return (
            f"mkdir -p {install_dir} && cd {install_dir}"
            f" && curl -fLsS --retry 3 -o agent.tar.gz {url}"
            f" && tar xzf agent.tar.gz"
            f" && ./agent.exe service force-reinstall --port={agent.port} --creds_path={creds}"
            f" --user={shlex.quote(agent.service_user)}"
        )
    install_dir = shlex.quote(agent.install_dir)
    return (
        f"cd {install_dir}"
        f" && sudo curl -fLsS --retry 3 -o agent.tar.gz {url}"
        f" && sudo tar xzf agent.tar.gz"
        f" && sudo chmod +x agent"
        f" && sudo ./agent service force-reinstall --port={agent.port} --creds_path={creds}"
        f" --user={shlex.quote(host.ssh_user)}"
    )


def service_user_script(agent: AgentSettings) -> str:
    """PowerShell script creating the local user the agent service runs as."""
    password = secrets.token_urlsafe(24)
    register_secret(password)
    user = agent.service_user
    return (
        f"$password = ConvertTo-SecureString '{password}' -AsPlainText -Force\n"
        f"if (-not (Get-LocalUser -Name '{user}' -ErrorAction SilentlyContinue)) {{\n"
        f"    New-LocalUser -Name '{user}' -Password $password -PasswordNeverExpires\n"
        f"}} else {{\n"
        f"    Set-LocalUser -Name '{user}' -Password $password\n"
        f"}}\n"
        f"Add-LocalGroupMember -Group 'Administrators' -Member '{user}' -ErrorAction SilentlyContinue\n"
    )


class AgentInstaller:
    """Brings up the remote agent according to the distro's bootstrap method."""

    def __init__(
        self,
        executor: BoundedRemoteExecutor,
        settings: Settings,
        hosts: HostStore,
        credentials: CredentialProvisioner,
        scripts: ScriptDeployer,
    ):
        self.executor = executor
        self.settings = settings
        self.hosts = hosts
        self.credentials = credentials
        self.scripts = scripts

    async def install(self, host: Host) -> None:
        method = host.bootstrap_method
        if method == BootstrapMethod.NONE:
            return
        if method == BootstrapMethod.USER_DATA:
            self._await_user_data(host)
            return
        await self._install_over_ssh(host)

    def _await_user_data(self, host: Host) -> None:
        # The user data script starts the agent itself; a fresh last
        # communication time keeps agent deploy jobs away from the host.
        try:
            self.hosts.update_last_communicated(host)
        except PersistenceError as e:
            log_advisory(logger, e, f"Failed to update last communication time for host {host.id}")

        self.hosts.set_provisioned_not_running(host)
        logger.info(
            f"Host {host.id} ({host.distro.id}) provisioned by app server after "
            f"{host.provision_attempts} attempt(s), awaiting user data to finish"
        )

    async def _install_over_ssh(self, host: Host) -> None:
        if host.distro.is_windows():
            await self._setup_service_user(host)

        await self.credentials.issue(host)

        cmd = fetch_and_reinstall_agent_command(host, self.settings.agent)
        await run_on_host(self.executor, self.settings.ssh, host, cmd, BINARY_DOWNLOAD_TIMEOUT, "fetch and reinstall agent")
        logger.info(f"Fetched agent binary and started service on host {host.id} ({host.distro.id})")

    async def _setup_service_user(self, host: Host) -> None:
        path = posixpath.join(host.distro.home(), SERVICE_USER_SCRIPT)
        await self.scripts.deploy(host, service_user_script(self.settings.agent), path)
        name = shlex.quote(SERVICE_USER_SCRIPT)
        await run_on_host(
            self.executor,
            self.settings.ssh,
            host,
            f"powershell ./{name} && rm -f ./{name}",
            FILE_TRANSFER_TIMEOUT,
            "set up service user",
        )
