"""SSH argument builders: ssh options, remote address parsing, scp argv."""

import os
from dataclasses import dataclass

from hostinit.config import SSHSettings
from hostinit.errors import ConfigurationError
from hostinit.host.types import Host


@dataclass(frozen=True)
class SSHInfo:
    """Where to connect for one host."""

    hostname: str
    port: int = 22
    user: str = ""

    @property
    def address(self) -> str:
        """SSH address string (user@host)."""
        return f"{self.user}@{self.hostname}" if self.user else self.hostname


def parse_ssh_info(host: Host) -> SSHInfo:
    """Split ``host[:port]`` from the host record into an SSHInfo."""
    address = host.address
    if not address:
        raise ConfigurationError("host has no DNS name or IP address", host_id=host.id, operation="ssh info")

    hostname, port = address, 22
    if address.count(":") == 1:
        hostname, raw_port = address.split(":")
        try:
            port = int(raw_port)
        except ValueError as e:
            raise ConfigurationError(f"invalid port in '{address}'", host_id=host.id, operation="ssh info") from e
    return SSHInfo(hostname=hostname, port=port, user=host.ssh_user)


def ssh_options(settings: SSHSettings) -> list[str]:
    """Build the ``-o``/``-i`` options shared by ssh and scp."""
    args = []
    for option in settings.options:
        args += ["-o", option]
    if settings.key_path:
        args += ["-i", os.path.expanduser(settings.key_path)]
    return args


def ssh_base_args(info: SSHInfo, options: list[str]) -> list[str]:
    """Build base SSH arguments; the remote command line goes last."""
    args = ["ssh", *options]
    if info.port and info.port != 22:
        args += ["-p", str(info.port)]
    args.append(info.address)
    return args


def build_scp_command(src: str, dst: str, info: SSHInfo, options: list[str]) -> list[str]:
    """Build an scp argv copying local *src* to *dst* on the host."""
    return ["scp", "-P", str(info.port), *options, src, f"{info.address}:{dst}"]
