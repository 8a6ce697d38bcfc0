"""Remote execution: bounded commands, SSH argument helpers, script staging."""

from hostinit.remote.executor import (
    ARTIFACT_FETCH_TIMEOUT,
    BINARY_DOWNLOAD_TIMEOUT,
    FILE_TRANSFER_TIMEOUT,
    REMOTE_SETUP_TIMEOUT,
    BoundedRemoteExecutor,
    CappedBuffer,
    CommandResult,
    RemoteCommand,
    run_on_host,
)
from hostinit.remote.scripts import ScriptDeployer, expand_script
from hostinit.remote.ssh import SSHInfo, build_scp_command, parse_ssh_info, ssh_base_args, ssh_options

__all__ = [
    "ARTIFACT_FETCH_TIMEOUT",
    "BINARY_DOWNLOAD_TIMEOUT",
    "FILE_TRANSFER_TIMEOUT",
    "REMOTE_SETUP_TIMEOUT",
    "BoundedRemoteExecutor",
    "CappedBuffer",
    "CommandResult",
    "RemoteCommand",
    "SSHInfo",
    "ScriptDeployer",
    "build_scp_command",
    "expand_script",
    "parse_ssh_info",
    "run_on_host",
    "ssh_base_args",
    "ssh_options",
]
