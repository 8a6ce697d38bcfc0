"""Bounded command execution, locally or over SSH.

Every ssh, scp and curl invocation made while provisioning goes through a
``RemoteCommand`` built by ``BoundedRemoteExecutor.command()``:

    result = await (
        executor.command()
        .host(info.hostname).user(info.user).port(info.port)
        .extend_remote_args(*options)
        .redirect_error_to_output()
        .append("mkdir -p ~/cli_bin")
        .run(timeout=REMOTE_SETUP_TIMEOUT)
    )
    result.raise_for_status(host_id=host.id, operation="mkdir")

Each run has a hard deadline and captures at most ``output_limit`` bytes.
Nothing here retries.
"""

import asyncio
import logging
import shlex
from dataclasses import dataclass

from hostinit.config import MAX_OUTPUT_BYTES
from hostinit.errors import RemoteCommandError
from hostinit.remote.ssh import SSHInfo, parse_ssh_info, ssh_base_args, ssh_options

logger = logging.getLogger(__name__)

# Deadlines, seconds
REMOTE_SETUP_TIMEOUT = 30
FILE_TRANSFER_TIMEOUT = 60
BINARY_DOWNLOAD_TIMEOUT = 120
ARTIFACT_FETCH_TIMEOUT = 900

_READ_CHUNK = 64 * 1024


class CappedBuffer:
    """In-memory output sink that stops growing at *max_bytes*."""

    def __init__(self, max_bytes=MAX_OUTPUT_BYTES):
        self.max_bytes = max_bytes
        self.truncated = False
        self._buf = bytearray()

    def write(self, data: bytes) -> int:
        room = self.max_bytes - len(self._buf)
        if room <= 0:
            self.truncated = self.truncated or bool(data)
            return len(data)
        if len(data) > room:
            self.truncated = True
        self._buf += data[:room]
        return len(data)

    def getvalue(self) -> str:
        return self._buf.decode(errors="replace")

    def __len__(self):
        return len(self._buf)


@dataclass
class CommandResult:
    returncode: int
    output: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def raise_for_status(self, host_id=None, operation=None) -> "CommandResult":
        """Raise RemoteCommandError carrying the captured output unless ok."""
        if self.timed_out:
            raise RemoteCommandError("command timed out", host_id=host_id, operation=operation, output=self.output)
        if self.returncode != 0:
            raise RemoteCommandError(
                f"command exited with code {self.returncode}",
                host_id=host_id,
                operation=operation,
                output=self.output,
            )
        return self


class RemoteCommand:
    """Builder for one bounded command."""

    def __init__(self, output_limit=MAX_OUTPUT_BYTES, dry_run=False):
        self._output_limit = output_limit
        self._dry_run = dry_run
        self._host = None
        self._user = ""
        self._port = 22
        self._remote_args: list[str] = []
        self._redirect_error = False
        self._argv: list[str] | None = None
        self._cmdline: str | None = None

    def host(self, hostname: str) -> "RemoteCommand":
        self._host = hostname
        return self

    def user(self, user: str) -> "RemoteCommand":
        self._user = user
        return self

    def port(self, port: int) -> "RemoteCommand":
        self._port = port
        return self

    def extend_remote_args(self, *args: str) -> "RemoteCommand":
        self._remote_args.extend(args)
        return self

    def redirect_error_to_output(self, redirect=True) -> "RemoteCommand":
        self._redirect_error = redirect
        return self

    def set_output_limit(self, max_bytes: int) -> "RemoteCommand":
        self._output_limit = max_bytes
        return self

    def add(self, argv: list[str]) -> "RemoteCommand":
        """Set the program as an argv list."""
        self._argv = list(argv)
        self._cmdline = None
        return self

    def append(self, cmdline: str) -> "RemoteCommand":
        """Set the program as a literal shell command line."""
        self._cmdline = cmdline
        self._argv = None
        return self

    def build(self) -> list[str]:
        """Final argv to execute."""
        if self._argv is None and self._cmdline is None:
            raise ValueError("command has no program; call add() or append() first")
        if self._host:
            info = SSHInfo(hostname=self._host, port=self._port, user=self._user)
            cmdline = self._cmdline if self._cmdline is not None else shlex.join(self._argv)
            return ssh_base_args(info, self._remote_args) + [cmdline]
        if self._argv is not None:
            return list(self._argv)
        return shlex.split(self._cmdline)

    async def run(self, timeout: float) -> CommandResult:
        """Run under *timeout* seconds; never raises for a failing command."""
        argv = self.build()
        if self._dry_run:
            logger.info(f"[dry-run] {shlex.join(argv)}")
            return CommandResult(returncode=0)

        output = CappedBuffer(self._output_limit)
        errors = output if self._redirect_error else CappedBuffer(self._output_limit)

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT if self._redirect_error else asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.error(f"Error: '{argv[0]}' not found. Is it installed and on PATH?")
            return CommandResult(returncode=127, output=f"'{argv[0]}' not found")

        async def _drain(stream, sink):
            while True:
                chunk = await stream.read(_READ_CHUNK)
                if not chunk:
                    break
                sink.write(chunk)

        readers = [_drain(proc.stdout, output)]
        if not self._redirect_error:
            readers.append(_drain(proc.stderr, errors))

        try:
            await asyncio.wait_for(asyncio.gather(*readers, proc.wait()), timeout=timeout)
        except TimeoutError:
            logger.error(f"Command timed out after {timeout}s: {argv[0]}")
            await _kill(proc)
            return CommandResult(returncode=proc.returncode or -1, output=output.getvalue(), timed_out=True)
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        if output.truncated:
            logger.debug(f"Output of '{argv[0]}' truncated at {self._output_limit} bytes")
        return CommandResult(returncode=proc.returncode, output=output.getvalue())


async def _kill(proc):
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


class BoundedRemoteExecutor:
    """Factory for RemoteCommand builders sharing an output cap and dry-run flag."""

    def __init__(self, output_limit=MAX_OUTPUT_BYTES, dry_run=False):
        self.output_limit = output_limit
        self.dry_run = dry_run

    def command(self) -> RemoteCommand:
        return RemoteCommand(output_limit=self.output_limit, dry_run=self.dry_run)


async def run_on_host(executor: BoundedRemoteExecutor, ssh_settings, host, cmdline: str, timeout: float, operation: str) -> str:
    """Run *cmdline* on *host* over SSH and return its merged output.

    Raises RemoteCommandError (with the captured output) on failure.
    """
    info = parse_ssh_info(host)
    result = await (
        executor.command()
        .host(info.hostname)
        .user(info.user)
        .port(info.port)
        .extend_remote_args(*ssh_options(ssh_settings))
        .redirect_error_to_output()
        .append(cmdline)
        .run(timeout=timeout)
    )
    result.raise_for_status(host_id=host.id, operation=operation)
    return result.output
