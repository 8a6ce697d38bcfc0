"""Settings loading: YAML file -> frozen dataclasses passed to every component."""

import logging
import os
from dataclasses import dataclass, field
from types import MappingProxyType

import yaml

from hostinit.errors import ConfigurationError

logger = logging.getLogger(__name__)

MAX_OUTPUT_BYTES = 1024 * 1024


@dataclass(frozen=True)
class SSHSettings:
    """How to reach hosts over SSH."""

    key_path: str = "~/.ssh/id_ed25519"
    options: tuple[str, ...] = (
        "StrictHostKeyChecking=no",
        "UserKnownHostsFile=/dev/null",
        "BatchMode=yes",
        "ServerAliveInterval=60",
        "ServerAliveCountMax=5",
    )


@dataclass(frozen=True)
class AgentSettings:
    """Where the remote agent comes from and how its service is installed."""

    binaries_url: str = "https://downloads.example.com/agent"
    version: str = "latest"
    port: int = 2385
    install_dir: str = "/usr/local/bin"
    windows_install_dir: str = "C:/agent"
    credentials_path: str = "/etc/agent/credentials.json"
    windows_credentials_path: str = "C:/agent/credentials.json"
    service_user: str = "agent"


@dataclass(frozen=True)
class ClientSettings:
    """CLI client binary published for spawn hosts."""

    binaries_url: str = "https://downloads.example.com/client"
    binary_name: str = "hostinit-client"
    target_dir: str = "cli_bin"
    config_name: str = ".hostinit.yml"


@dataclass(frozen=True)
class Settings:
    """Immutable provisioning configuration."""

    api_url: str = "http://localhost:9090"
    ui_url: str = "http://localhost:9090"
    expansions: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))
    ssh: SSHSettings = field(default_factory=SSHSettings)
    agent: AgentSettings = field(default_factory=AgentSettings)
    client: ClientSettings = field(default_factory=ClientSettings)
    cloud_api_url: str = ""
    provision_retry_limit: int = 15
    retry_delay: float = 60.0
    output_limit: int = MAX_OUTPUT_BYTES

    @classmethod
    def from_dict(cls, d: dict) -> "Settings":
        """Build Settings from a parsed config dict, rejecting unknown keys."""
        d = dict(d or {})
        try:
            ssh_dict = dict(d.pop("ssh", None) or {})
            if "options" in ssh_dict:
                ssh_dict["options"] = tuple(ssh_dict["options"])
            ssh = SSHSettings(**ssh_dict)
            agent = AgentSettings(**(d.pop("agent", None) or {}))
            client = ClientSettings(**(d.pop("client", None) or {}))
            expansions = {str(k): str(v) for k, v in (d.pop("expansions", None) or {}).items()}
            return cls(
                ssh=ssh,
                agent=agent,
                client=client,
                expansions=MappingProxyType(expansions),
                **d,
            )
        except TypeError as e:
            raise ConfigurationError(f"invalid settings: {e}", operation="load settings") from e


def load_settings(config_path: str = "config.yaml") -> Settings:
    """Load settings from a YAML file."""
    path = _expand_path(config_path)
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(f"config file '{config_path}' not found", operation="load settings") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"error parsing YAML config: {e}", operation="load settings") from e

    if not isinstance(raw, dict):
        raise ConfigurationError("config file must contain a mapping", operation="load settings")

    settings = Settings.from_dict(raw)
    logger.debug(f"Loaded settings from {path}")
    return settings


def _expand_path(path: str) -> str:
    """Expand user home directory and environment variables in path."""
    return os.path.expanduser(os.path.expandvars(path))
