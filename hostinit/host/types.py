"""Host, distro and user dataclass types."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class HostStatus(str, Enum):
    STARTING = "starting"
    PROVISIONING = "provisioning"
    PROVISIONED = "provisioned"
    PROVISIONED_NOT_RUNNING = "provisioned-not-running"
    RUNNING = "running"
    UNPROVISIONED = "unprovisioned"
    TERMINATED = "terminated"


class BootstrapMethod(str, Enum):
    """How a new host becomes workload-capable."""

    NONE = "none"
    USER_DATA = "user-data"
    SSH = "ssh"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Distro:
    """Image-level settings shared by every host of a distro."""

    id: str
    arch: str = "linux_amd64"
    user: str = "ubuntu"
    bootstrap_method: BootstrapMethod = BootstrapMethod.SSH
    setup: str = ""
    teardown: str = ""
    work_dir: str = "/data/hostinit"
    home_dir: str = ""

    def is_windows(self) -> bool:
        return self.arch.startswith("windows")

    def home(self) -> str:
        """Home directory of the distro user (Cygwin-style on Windows)."""
        if self.home_dir:
            return self.home_dir
        if self.user == "root":
            return "/root"
        return f"/home/{self.user}"

    def setup_script_name(self) -> str:
        return "setup.ps1" if self.is_windows() else "setup.sh"

    def teardown_script_name(self) -> str:
        return "teardown.sh"

    @classmethod
    def from_dict(cls, d: dict) -> "Distro":
        d = dict(d)
        if "bootstrap_method" in d:
            d["bootstrap_method"] = BootstrapMethod(d["bootstrap_method"])
        return cls(**d)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "arch": self.arch,
            "user": self.user,
            "bootstrap_method": self.bootstrap_method.value,
            "setup": self.setup,
            "teardown": self.teardown,
            "work_dir": self.work_dir,
            "home_dir": self.home_dir,
        }


@dataclass(frozen=True)
class ProvisionOptions:
    """Per-host requests made by the user who asked for the host."""

    owner_id: str = ""
    task_id: str = ""
    load_cli: bool = False


@dataclass
class Host:
    """A cloud instance being driven through provisioning."""

    id: str
    distro: Distro
    host: str = ""  # DNS name, optionally host:port
    ip: str = ""
    user: str = ""
    provider: str = "static"
    status: HostStatus = HostStatus.PROVISIONING
    provision_attempts: int = 0
    provisioned: bool = False
    spawned_by_task: bool = False
    provision_options: ProvisionOptions | None = None
    creation_time: datetime = field(default_factory=utcnow)
    provision_time: datetime | None = None
    last_communication_time: datetime | None = None

    @property
    def ssh_user(self) -> str:
        return self.user or self.distro.user

    @property
    def address(self) -> str:
        """Address used for SSH: DNS name when known, else IP."""
        return self.host or self.ip

    @property
    def bootstrap_method(self) -> BootstrapMethod:
        return self.distro.bootstrap_method

    @classmethod
    def from_dict(cls, d: dict) -> "Host":
        d = dict(d)
        d["distro"] = Distro.from_dict(d["distro"])
        if "status" in d:
            d["status"] = HostStatus(d["status"])
        opts = d.pop("provision_options", None)
        d["provision_options"] = ProvisionOptions(**opts) if opts else None
        for key in ("creation_time", "provision_time", "last_communication_time"):
            if isinstance(d.get(key), str):
                d[key] = datetime.fromisoformat(d[key])
        return cls(**d)

    def to_dict(self) -> dict:
        opts = self.provision_options
        return {
            "id": self.id,
            "distro": self.distro.to_dict(),
            "host": self.host,
            "ip": self.ip,
            "user": self.user,
            "provider": self.provider,
            "status": self.status.value,
            "provision_attempts": self.provision_attempts,
            "provisioned": self.provisioned,
            "spawned_by_task": self.spawned_by_task,
            "provision_options": (
                {"owner_id": opts.owner_id, "task_id": opts.task_id, "load_cli": opts.load_cli} if opts else None
            ),
            "creation_time": self.creation_time.isoformat(),
            "provision_time": self.provision_time.isoformat() if self.provision_time else None,
            "last_communication_time": (
                self.last_communication_time.isoformat() if self.last_communication_time else None
            ),
        }


@dataclass
class User:
    """Owner of a spawn host; only what the client config needs."""

    id: str
    api_key: str = ""
