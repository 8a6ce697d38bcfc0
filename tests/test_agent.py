"""Tests for the agent installer."""

import pytest

from hostinit.agent import AgentInstaller, agent_download_url, fetch_and_reinstall_agent_command
from hostinit.config import AgentSettings
from hostinit.credentials import CredentialProvisioner, CredentialStore
from hostinit.errors import PersistenceError, RemoteCommandError
from hostinit.host.store import HostStore
from hostinit.host.types import BootstrapMethod, HostStatus
from hostinit.remote.executor import BINARY_DOWNLOAD_TIMEOUT, FILE_TRANSFER_TIMEOUT
from hostinit.remote.scripts import ScriptDeployer


@pytest.fixture
def installer(fake_executor, settings):
    hosts = HostStore()
    credentials = CredentialProvisioner(fake_executor, settings, CredentialStore())
    scripts = ScriptDeployer(fake_executor, settings)
    return AgentInstaller(fake_executor, settings, hosts, credentials, scripts)


def test_agent_download_url(make_host):
    agent = AgentSettings(binaries_url="https://dl.example.com/agent/", version="v2")
    assert agent_download_url(make_host(), agent) == "https://dl.example.com/agent/v2/linux_amd64/agent.tar.gz"


def test_reinstall_command_linux(make_host):
    cmd = fetch_and_reinstall_agent_command(make_host(), AgentSettings(port=2400))
    assert cmd.startswith("cd /usr/local/bin && sudo curl -fLsS --retry 3")
    assert "sudo ./agent service force-reinstall --port=2400" in cmd
    assert "--creds_path=/etc/agent/credentials.json" in cmd
    assert cmd.endswith("--user=ubuntu")


def test_reinstall_command_windows(make_host):
    cmd = fetch_and_reinstall_agent_command(make_host(distro={"arch": "windows_amd64"}), AgentSettings())
    assert "./agent.exe service force-reinstall" in cmd
    assert "sudo" not in cmd
    assert cmd.endswith("--user=agent")


async def test_install_none_is_noop(installer, fake_executor, make_host):
    host = make_host(distro={"bootstrap_method": BootstrapMethod.NONE})
    await installer.install(host)
    assert fake_executor.calls == []
    assert host.status == HostStatus.PROVISIONING


async def test_install_user_data(installer, fake_executor, make_host):
    host = make_host(distro={"bootstrap_method": BootstrapMethod.USER_DATA})
    await installer.install(host)

    assert fake_executor.calls == []
    assert host.status == HostStatus.PROVISIONED_NOT_RUNNING
    assert not host.provisioned
    assert host.last_communication_time is not None
    assert installer.hosts.load("h-1").status == HostStatus.PROVISIONED_NOT_RUNNING


async def test_install_user_data_last_communicated_failure_is_advisory(installer, make_host, monkeypatch, caplog):
    host = make_host(distro={"bootstrap_method": BootstrapMethod.USER_DATA})

    def _fail(h):
        raise PersistenceError("disk full", host_id=h.id)

    monkeypatch.setattr(installer.hosts, "update_last_communicated", _fail)
    await installer.install(host)

    assert host.status == HostStatus.PROVISIONED_NOT_RUNNING
    assert "Failed to update last communication time" in caplog.text


async def test_install_ssh_linux(installer, fake_executor, make_host):
    await installer.install(make_host())

    commands = fake_executor.commands()
    assert len(commands) == 2
    assert "sudo tee /etc/agent/credentials.json" in commands[0]
    assert "force-reinstall" in commands[1]
    assert fake_executor.timeout_for("force-reinstall") == BINARY_DOWNLOAD_TIMEOUT
    assert "h-1" in installer.credentials.store


async def test_install_ssh_windows_sets_up_service_user(installer, fake_executor, make_host):
    host = make_host(distro={"arch": "windows_amd64", "user": "Administrator"})
    await installer.install(host)

    commands = fake_executor.commands()
    assert commands[0].startswith("scp ")
    assert commands[0].endswith("Administrator@ec2-1-2-3-4.compute.amazonaws.com:/home/Administrator/setup-user.ps1")
    assert "New-LocalUser -Name 'agent'" in fake_executor.transfers[0][1]
    assert commands[1].endswith("powershell ./setup-user.ps1 && rm -f ./setup-user.ps1")
    assert fake_executor.timeout_for("powershell") == FILE_TRANSFER_TIMEOUT
    assert "agent.exe service force-reinstall" in commands[-1]


async def test_install_ssh_credential_failure_skips_reinstall(installer, fake_executor, make_host):
    fake_executor.fail_on.add("sudo tee")
    with pytest.raises(RemoteCommandError):
        await installer.install(make_host())

    assert not any("force-reinstall" in c for c in fake_executor.commands())
    assert len(installer.credentials.store) == 0
