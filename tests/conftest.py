"""Shared pytest fixtures for all test modules."""

import os
import subprocess
import sys
from types import MappingProxyType

import pytest

from hostinit.cloud import StaticCloudManager
from hostinit.config import SSHSettings, Settings
from hostinit.credentials import CredentialStore
from hostinit.env import ProvisionEnv
from hostinit.events import EventLog
from hostinit.host.store import HostStore, UserStore
from hostinit.host.types import BootstrapMethod, Distro, Host, HostStatus, User
from hostinit.jobs.queue import JobQueue
from hostinit.remote.executor import BoundedRemoteExecutor, CommandResult, RemoteCommand

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the hostinit CLI as a subprocess."""

    def _run(*args):
        result = subprocess.run(
            [sys.executable, "-m", "hostinit.hostinit", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


# ── Fake remote execution ───────────────────────────────────────────


class FakeCommand(RemoteCommand):
    """Records the argv instead of running it; fails when a pattern matches."""

    def __init__(self, executor):
        super().__init__(output_limit=executor.output_limit)
        self._executor = executor

    async def run(self, timeout):
        argv = self.build()
        joined = " ".join(argv)
        ex = self._executor
        ex.calls.append((argv, timeout))
        if argv[0] == "scp":
            local_path = argv[-2]
            with open(local_path) as f:
                ex.transfers.append((argv[-1], f.read()))
            ex.staged_files.append(local_path)
        for pattern in ex.fail_on:
            if pattern in joined:
                return CommandResult(returncode=1, output=f"remote failure: {pattern}")
        return CommandResult(returncode=0, output="ok")


class FakeExecutor(BoundedRemoteExecutor):
    def __init__(self):
        super().__init__()
        self.calls: list[tuple[list[str], float]] = []
        self.transfers: list[tuple[str, str]] = []
        self.staged_files: list[str] = []
        self.fail_on: set[str] = set()

    def command(self):
        return FakeCommand(self)

    def commands(self) -> list[str]:
        """Every recorded argv joined into one string."""
        return [" ".join(argv) for argv, _ in self.calls]

    def timeout_for(self, pattern) -> float:
        for argv, timeout in self.calls:
            if pattern in " ".join(argv):
                return timeout
        raise AssertionError(f"no command matching {pattern!r}")


@pytest.fixture
def fake_executor():
    return FakeExecutor()


# ── Domain fixtures ─────────────────────────────────────────────────


@pytest.fixture
def settings():
    return Settings(
        api_url="https://hostinit.example.com",
        ui_url="https://ui.example.com",
        expansions=MappingProxyType({"region": "us-east-1", "bucket": "artifacts"}),
        ssh=SSHSettings(key_path="", options=("StrictHostKeyChecking=no",)),
        retry_delay=60.0,
    )


@pytest.fixture
def make_host():
    """Factory for hosts with sensible provisioning defaults."""

    def _make(host_id="h-1", **overrides):
        distro_overrides = overrides.pop("distro", {})
        distro = Distro(
            id=distro_overrides.pop("id", "ubuntu2204"),
            bootstrap_method=distro_overrides.pop("bootstrap_method", BootstrapMethod.SSH),
            **distro_overrides,
        )
        fields = {
            "host": "ec2-1-2-3-4.compute.amazonaws.com",
            "status": HostStatus.PROVISIONING,
        }
        fields.update(overrides)
        return Host(id=host_id, distro=distro, **fields)

    return _make


@pytest.fixture
def env(settings, fake_executor):
    return ProvisionEnv(
        settings=settings,
        hosts=HostStore(),
        users=UserStore([User(id="alice", api_key="alice-api-key-0123456789")]),
        credentials=CredentialStore(),
        executor=fake_executor,
        cloud=StaticCloudManager(),
        events=EventLog(),
        queue=JobQueue(),
    )
