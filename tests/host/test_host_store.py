"""Tests for host persistence and status transitions."""

import pytest
import yaml

from hostinit.errors import PersistenceError
from hostinit.host.store import HostStore, UserStore
from hostinit.host.types import BootstrapMethod, Distro, Host, HostStatus, ProvisionOptions, User


def _write_hosts(path, doc):
    with open(path, "w") as f:
        yaml.safe_dump(doc, f)


# ── Types ─────────────────────────────────────────────────────────


def test_host_round_trips_through_dict(make_host):
    host = make_host(provision_options=ProvisionOptions(owner_id="alice", task_id="t1", load_cli=True))
    restored = Host.from_dict(host.to_dict())
    assert restored == host


def test_distro_home():
    assert Distro(id="d", user="root").home() == "/root"
    assert Distro(id="d", user="ubuntu").home() == "/home/ubuntu"
    assert Distro(id="d", home_dir="/cygdrive/c/Users/admin").home() == "/cygdrive/c/Users/admin"


def test_distro_script_names():
    assert Distro(id="d").setup_script_name() == "setup.sh"
    assert Distro(id="d", arch="windows_amd64").setup_script_name() == "setup.ps1"
    assert Distro(id="d", arch="windows_amd64").teardown_script_name() == "teardown.sh"


def test_host_address_prefers_dns(make_host):
    assert make_host(host="dns.example.com", ip="10.0.0.1").address == "dns.example.com"
    assert make_host(host="", ip="10.0.0.1").address == "10.0.0.1"


# ── HostStore ─────────────────────────────────────────────────────


def test_load_returns_independent_copy(make_host):
    store = HostStore([make_host()])
    host = store.load("h-1")
    host.provision_attempts = 99
    assert store.load("h-1").provision_attempts == 0
    assert store.load("missing") is None


def test_inc_provision_attempts(make_host):
    store = HostStore([make_host()])
    host = store.load("h-1")
    store.inc_provision_attempts(host)
    store.inc_provision_attempts(host)
    assert host.provision_attempts == 2
    assert store.load("h-1").provision_attempts == 2


def test_mark_as_provisioned(make_host):
    store = HostStore()
    host = make_host()
    store.mark_as_provisioned(host)
    saved = store.load("h-1")
    assert saved.status == HostStatus.PROVISIONED
    assert saved.provisioned
    assert saved.provision_time is not None


def test_set_unprovisioned_from_any_status(make_host):
    store = HostStore()
    host = make_host(status=HostStatus.PROVISIONED_NOT_RUNNING)
    store.set_unprovisioned(host)
    assert host.status == HostStatus.UNPROVISIONED
    assert not host.provisioned


def test_status_never_moves_backwards(make_host):
    store = HostStore()
    host = make_host(status=HostStatus.RUNNING)
    with pytest.raises(ValueError, match="cannot move"):
        store.set_provisioned_not_running(host)
    assert host.status == HostStatus.RUNNING


def test_from_file_and_flush(tmp_path, make_host):
    path = tmp_path / "hosts.yaml"
    _write_hosts(
        path,
        {
            "users": [{"id": "alice", "api_key": "k"}],
            "hosts": [make_host(distro={"bootstrap_method": BootstrapMethod.USER_DATA}).to_dict()],
        },
    )

    store = HostStore.from_file(str(path))
    host = store.load("h-1")
    assert host.bootstrap_method == BootstrapMethod.USER_DATA
    store.set_dns_name(host, "new.example.com")

    with open(path) as f:
        doc = yaml.safe_load(f)
    assert doc["hosts"][0]["host"] == "new.example.com"
    assert doc["users"] == [{"id": "alice", "api_key": "k"}]
    assert not (tmp_path / "hosts.yaml.tmp").exists()


def test_from_missing_file(tmp_path):
    store = HostStore.from_file(str(tmp_path / "hosts.yaml"))
    assert store.all() == []


def test_flush_failure(tmp_path, make_host):
    store = HostStore(path=str(tmp_path / "no-such-dir" / "hosts.yaml"))
    host = make_host()
    with pytest.raises(PersistenceError) as exc_info:
        store.inc_provision_attempts(host)
    assert exc_info.value.host_id == "h-1"
    # In-memory count still moved
    assert host.provision_attempts == 1


# ── UserStore ─────────────────────────────────────────────────────


def test_user_store_from_file(tmp_path):
    path = tmp_path / "hosts.yaml"
    _write_hosts(path, {"users": [{"id": "alice", "api_key": "k1"}]})
    users = UserStore.from_file(str(path))
    assert users.find("alice") == User(id="alice", api_key="k1")
    assert users.find("bob") is None


# ── Failed writes leave the host untouched ────────────────────────


def _failing_flush(host):
    raise PersistenceError("disk full", host_id=host.id, operation="save host")


def test_mark_as_provisioned_write_failure(make_host, monkeypatch):
    store = HostStore([make_host()])
    host = store.load("h-1")
    monkeypatch.setattr(store, "_flush", _failing_flush)

    with pytest.raises(PersistenceError):
        store.mark_as_provisioned(host)

    assert host.status == HostStatus.PROVISIONING
    assert not host.provisioned
    assert host.provision_time is None
    assert store.load("h-1").status == HostStatus.PROVISIONING


def test_set_provisioned_not_running_write_failure(make_host, monkeypatch):
    store = HostStore([make_host()])
    host = store.load("h-1")
    monkeypatch.setattr(store, "_flush", _failing_flush)

    with pytest.raises(PersistenceError):
        store.set_provisioned_not_running(host)

    assert host.status == HostStatus.PROVISIONING
    assert store.load("h-1").status == HostStatus.PROVISIONING


def test_set_dns_name_write_failure_keeps_record(make_host, monkeypatch):
    store = HostStore([make_host(host="")])
    host = store.load("h-1")
    monkeypatch.setattr(store, "_flush", _failing_flush)

    with pytest.raises(PersistenceError):
        store.set_dns_name(host, "new.example.com")

    assert host.host == ""
    assert store.load("h-1").host == ""
