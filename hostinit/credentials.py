"""Per-host agent credentials: generate, push to the host, then persist."""

import hashlib
import json
import logging
import posixpath
import secrets
import shlex
from dataclasses import asdict, dataclass, field
from datetime import datetime

import yaml

from hostinit.config import AgentSettings, Settings
from hostinit.errors import PersistenceError
from hostinit.host.store import write_document
from hostinit.host.types import Host, utcnow
from hostinit.redact import register_secret
from hostinit.remote.executor import FILE_TRANSFER_TIMEOUT, BoundedRemoteExecutor, run_on_host

logger = logging.getLogger(__name__)


@dataclass
class CredentialBundle:
    """Opaque secret material the agent uses to authenticate callers."""

    host_id: str
    key: str
    cert: str
    ca_cert: str
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def generate(cls, host_id: str) -> "CredentialBundle":
        key = secrets.token_hex(32)
        cert = hashlib.sha256(f"{host_id}:{key}".encode()).hexdigest()
        ca_cert = secrets.token_hex(16)
        for value in (key, cert):
            register_secret(value)
        return cls(host_id=host_id, key=key, cert=cert, ca_cert=ca_cert)

    def to_json(self) -> str:
        """Agent-side credentials file contents."""
        return json.dumps({"key": self.key, "cert": self.cert, "ca_cert": self.ca_cert, "host_id": self.host_id})

    def to_dict(self) -> dict:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        return d


class CredentialStore:
    """Credential bundles keyed by host id."""

    def __init__(self, path=None):
        self.path = path
        self._bundles: dict[str, CredentialBundle] = {}

    def get(self, host_id: str) -> CredentialBundle | None:
        return self._bundles.get(host_id)

    def save(self, bundle: CredentialBundle) -> None:
        """Store *bundle*; nothing is kept when the write fails."""
        bundles = dict(self._bundles)
        bundles[bundle.host_id] = bundle
        self._flush(bundles, bundle.host_id, "save credentials")
        self._bundles = bundles

    def delete(self, host_id: str) -> bool:
        if host_id not in self._bundles:
            return False
        bundles = {k: b for k, b in self._bundles.items() if k != host_id}
        self._flush(bundles, host_id, "delete credentials")
        self._bundles = bundles
        return True

    def _flush(self, bundles, host_id, operation):
        if not self.path:
            return
        try:
            write_document(self.path, {"credentials": [b.to_dict() for b in bundles.values()]})
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"error writing {self.path}: {e}", host_id=host_id, operation=operation) from e

    def __len__(self):
        return len(self._bundles)

    def __contains__(self, host_id):
        return host_id in self._bundles


def credentials_path(host: Host, agent: AgentSettings) -> str:
    return agent.windows_credentials_path if host.distro.is_windows() else agent.credentials_path


def write_credentials_command(host: Host, bundle: CredentialBundle, agent: AgentSettings) -> str:
    """Shell command that writes *bundle* to the agent credentials file on *host*."""
    path = credentials_path(host, agent)
    directory = posixpath.dirname(path)
    contents = shlex.quote(bundle.to_json())
    if host.distro.is_windows():
        return f"mkdir -p {shlex.quote(directory)} && printf '%s' {contents} > {shlex.quote(path)}"
    return (
        f"sudo mkdir -p {shlex.quote(directory)}"
        f" && printf '%s' {contents} | sudo tee {shlex.quote(path)} > /dev/null"
        f" && sudo chmod 600 {shlex.quote(path)}"
    )


class CredentialProvisioner:
    """Issues credentials so that only hosts that received them have a stored record."""

    def __init__(self, executor: BoundedRemoteExecutor, settings: Settings, store: CredentialStore):
        self.executor = executor
        self.settings = settings
        self.store = store

    async def issue(self, host: Host) -> CredentialBundle:
        """Generate a bundle, write it on the host, then persist it.

        Raises RemoteCommandError when the remote write fails; nothing is
        stored in that case.
        """
        bundle = CredentialBundle.generate(host.id)
        cmd = write_credentials_command(host, bundle, self.settings.agent)

        logger.info(f"Putting agent credentials on host {host.id} ({host.distro.id})")
        await run_on_host(self.executor, self.settings.ssh, host, cmd, FILE_TRANSFER_TIMEOUT, "write agent credentials")

        self.store.save(bundle)
        return bundle

    def discard(self, host: Host) -> bool:
        """Drop any stored bundle for *host*; used after a failed attempt."""
        return self.store.delete(host.id)
