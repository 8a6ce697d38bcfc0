"""Host and user persistence.

Stores keep plain dict records keyed by id and, when given a path, flush the
whole document back to a YAML file after every write. Every host mutation the
provisioning job performs goes through one of the ``HostStore`` methods below.
"""

import copy
import dataclasses
import logging
import os

import yaml

from hostinit.errors import PersistenceError
from hostinit.host.types import Host, HostStatus, User, utcnow

logger = logging.getLogger(__name__)

# Forward order of statuses; UNPROVISIONED is reachable from anywhere.
_STATUS_ORDER = [
    HostStatus.STARTING,
    HostStatus.PROVISIONING,
    HostStatus.PROVISIONED_NOT_RUNNING,
    HostStatus.PROVISIONED,
    HostStatus.RUNNING,
    HostStatus.TERMINATED,
]


def read_document(path):
    if not path or not os.path.exists(path):
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def write_document(path, doc):
    """Replace the YAML file at *path* atomically; the old file survives a failed write."""
    tmp_path = f"{path}.tmp"
    try:
        with open(tmp_path, "w") as f:
            yaml.safe_dump(doc, f, sort_keys=False)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class HostStore:
    """Hosts keyed by id."""

    def __init__(self, hosts=None, path=None):
        self._records: dict[str, dict] = {}
        self.path = path
        for h in hosts or []:
            self._records[h.id] = h.to_dict()

    @classmethod
    def from_file(cls, path) -> "HostStore":
        doc = read_document(path)
        hosts = [Host.from_dict(d) for d in doc.get("hosts", [])]
        return cls(hosts, path=path)

    def load(self, host_id: str) -> Host | None:
        record = self._records.get(host_id)
        if record is None:
            return None
        return Host.from_dict(copy.deepcopy(record))

    def all(self) -> list[Host]:
        return [Host.from_dict(copy.deepcopy(r)) for r in self._records.values()]

    def save(self, host: Host) -> None:
        """Persist *host*; on a failed write the previous record is kept."""
        previous = self._records.get(host.id)
        self._records[host.id] = host.to_dict()
        try:
            self._flush(host)
        except PersistenceError:
            if previous is None:
                del self._records[host.id]
            else:
                self._records[host.id] = previous
            raise

    def _flush(self, host):
        if not self.path:
            return
        try:
            doc = read_document(self.path)
            doc["hosts"] = list(self._records.values())
            write_document(self.path, doc)
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"error writing {self.path}: {e}", host_id=host.id, operation="save host") from e

    def _update(self, current: Host, status: HostStatus | None = None, **changes) -> None:
        """Persist a changed copy of *current*, then apply the changes to it.

        When the write fails *current* is left untouched.
        """
        if status is not None:
            if status != HostStatus.UNPROVISIONED and current.status in _STATUS_ORDER:
                if _STATUS_ORDER.index(status) < _STATUS_ORDER.index(current.status):
                    raise ValueError(
                        f"host {current.id}: status cannot move from '{current.status.value}' to '{status.value}'"
                    )
            changes["status"] = status
        self.save(dataclasses.replace(current, **changes))
        for name, value in changes.items():
            setattr(current, name, value)

    # ── Mutations used by provisioning ─────────────────────────────

    def inc_provision_attempts(self, host: Host) -> None:
        """Bump the attempt counter in memory, then persist it.

        The in-memory count is incremented even when the write fails.
        """
        host.provision_attempts += 1
        self.save(host)

    def set_dns_name(self, host: Host, dns_name: str) -> None:
        self._update(host, host=dns_name)

    def set_provisioned_not_running(self, host: Host) -> None:
        self._update(host, HostStatus.PROVISIONED_NOT_RUNNING)

    def set_unprovisioned(self, host: Host) -> None:
        self._update(host, HostStatus.UNPROVISIONED, provisioned=False)

    def mark_as_provisioned(self, host: Host) -> None:
        self._update(host, HostStatus.PROVISIONED, provisioned=True, provision_time=utcnow())

    def update_last_communicated(self, host: Host) -> None:
        self._update(host, last_communication_time=utcnow())


class UserStore:
    """Users keyed by id; read-only for provisioning."""

    def __init__(self, users=None):
        self._users: dict[str, User] = {u.id: u for u in users or []}

    @classmethod
    def from_file(cls, path) -> "UserStore":
        doc = read_document(path)
        return cls([User(**d) for d in doc.get("users", [])])

    def find(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    def add(self, user: User) -> None:
        self._users[user.id] = user
