"""CLI client deployment for spawn hosts."""

import json
import logging
import os
import shlex
import tempfile
from dataclasses import dataclass

from hostinit.config import Settings
from hostinit.errors import ConfigurationError
from hostinit.host.store import UserStore
from hostinit.host.types import Host
from hostinit.redact import register_secret
from hostinit.remote.executor import (
    ARTIFACT_FETCH_TIMEOUT,
    BINARY_DOWNLOAD_TIMEOUT,
    FILE_TRANSFER_TIMEOUT,
    REMOTE_SETUP_TIMEOUT,
    BoundedRemoteExecutor,
    run_on_host,
)
from hostinit.remote.ssh import build_scp_command, parse_ssh_info, ssh_options

logger = logging.getLogger(__name__)


def _quote_home_path(path: str) -> str:
    """Shell-quote *path*, leaving a leading ``~/`` unquoted so it still expands."""
    if path.startswith("~/"):
        return "~/" + shlex.quote(path[2:])
    return shlex.quote(path)


@dataclass(frozen=True)
class ClientLoadResult:
    """Where the client binary and its config ended up on the host."""

    binary_path: str
    config_path: str


class ClientDeployer:
    """Puts the CLI client and the owner's settings on a host."""

    def __init__(self, executor: BoundedRemoteExecutor, settings: Settings, users: UserStore):
        self.executor = executor
        self.settings = settings
        self.users = users

    async def load_client(self, host: Host) -> ClientLoadResult:
        """Install the client under ``~/<target_dir>`` and put it on PATH.

        Raises ConfigurationError when the owner cannot be resolved and
        RemoteCommandError when a remote step fails.
        """
        opts = host.provision_options
        if opts is None:
            raise ConfigurationError("host has no provision options", host_id=host.id, operation="load client")
        if not opts.owner_id:
            raise ConfigurationError("owner id not set", host_id=host.id, operation="load client")
        owner = self.users.find(opts.owner_id)
        if owner is None:
            raise ConfigurationError(f"owner '{opts.owner_id}' not found", host_id=host.id, operation="load client")
        register_secret(owner.api_key)

        client = self.settings.client
        target_dir = client.target_dir
        export = shlex.quote(f'export PATH="$PATH:~/{target_dir}"')
        setup_cmd = (
            f"mkdir -m 777 -p ~/{shlex.quote(target_dir)}"
            f" && (grep -qxF {export} ~/.profile || echo {export} >> ~/.profile || true;"
            f" grep -qxF {export} ~/.bash_profile || echo {export} >> ~/.bash_profile || true)"
        )
        await run_on_host(self.executor, self.settings.ssh, host, setup_cmd, REMOTE_SETUP_TIMEOUT, "set up client dir")

        url = f"{client.binaries_url.rstrip('/')}/{host.distro.arch}/{client.binary_name}"
        binary = shlex.quote(client.binary_name)
        download_cmd = (
            f"cd ~/{shlex.quote(target_dir)} && curl -fLsS --retry 3 -o {binary} {shlex.quote(url)} && chmod +x {binary}"
        )
        await run_on_host(self.executor, self.settings.ssh, host, download_cmd, BINARY_DOWNLOAD_TIMEOUT, "download client")

        config = {
            "api_key": owner.api_key,
            "api_server_host": f"{self.settings.api_url.rstrip('/')}/api",
            "ui_server_host": self.settings.ui_url,
            "user": owner.id,
        }
        config_path = f"{target_dir}/{client.config_name}"
        await self._copy_config(host, json.dumps(config), f"~/{config_path}")

        return ClientLoadResult(binary_path=f"~/{target_dir}/{client.binary_name}", config_path=config_path)

    async def _copy_config(self, host: Host, contents: str, remote_path: str) -> None:
        info = parse_ssh_info(host)
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yml", delete=False) as f:
            tmp_path = f.name
        try:
            os.chmod(tmp_path, 0o600)
            with open(tmp_path, "w") as f:
                f.write(contents)
            scp_args = build_scp_command(tmp_path, remote_path, info, ssh_options(self.settings.ssh))
            result = await (
                self.executor.command().add(scp_args).redirect_error_to_output().run(timeout=FILE_TRANSFER_TIMEOUT)
            )
            result.raise_for_status(host_id=host.id, operation="copy client config")
        finally:
            try:
                os.unlink(tmp_path)
            except OSError as e:
                logger.error(f"Error cleaning up client config file {tmp_path} for host {host.id}: {e}")

    async def run_spawn_setup(self, host: Host) -> str:
        """Run the distro setup script already copied to the host's home directory."""
        name = shlex.quote(host.distro.setup_script_name())
        if host.distro.is_windows():
            cmd = f"cd ~ && powershell ./{name}"
        else:
            cmd = f"cd ~ && sh ./{name}"
        return await run_on_host(self.executor, self.settings.ssh, host, cmd, FILE_TRANSFER_TIMEOUT, "run setup script")

    async def fetch_task_data(self, host: Host, task_id: str, result: ClientLoadResult) -> str:
        """Pull a task's source and artifacts onto the host with the deployed client."""
        fetch_cmd = (
            f"{_quote_home_path(result.binary_path)} -c {shlex.quote(result.config_path)} fetch -t {shlex.quote(task_id)}"
            f" --source --artifacts --dir={shlex.quote(host.distro.work_dir)}"
        )
        return await run_on_host(
            self.executor, self.settings.ssh, host, fetch_cmd, ARTIFACT_FETCH_TIMEOUT, f"fetch artifacts for {task_id}"
        )
