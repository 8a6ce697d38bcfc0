"""Script staging: expand placeholders, write a private temp file, scp it over."""

import logging
import os
import re
import shlex
import tempfile
import time

from hostinit.config import Settings
from hostinit.errors import ScriptExpansionError
from hostinit.host.types import Host
from hostinit.remote.executor import FILE_TRANSFER_TIMEOUT, BoundedRemoteExecutor
from hostinit.remote.ssh import build_scp_command, parse_ssh_info, ssh_options

logger = logging.getLogger(__name__)

# ${name} or ${name|default}
_PLACEHOLDER = re.compile(r"\$\{([A-Za-z0-9_.\-]+)(?:\|([^}]*))?\}")


def expand_script(script: str, expansions) -> str:
    """Replace ``${name}`` placeholders from *expansions*.

    ``${name|default}`` falls back to *default*; a bare ``${name}`` with no
    value raises ScriptExpansionError.
    """

    def _replace(match):
        name, default = match.group(1), match.group(2)
        if name in expansions:
            return expansions[name]
        if default is not None:
            return default
        raise ScriptExpansionError(f"no value for expansion '{name}'", operation="expand script")

    return _PLACEHOLDER.sub(_replace, script)


class ScriptDeployer:
    """Copies scripts to hosts, always removing the local staging file."""

    def __init__(self, executor: BoundedRemoteExecutor, settings: Settings):
        self.executor = executor
        self.settings = settings

    async def deploy(self, host: Host, script: str, remote_path: str) -> None:
        """Expand *script* and copy it to *remote_path* on *host*.

        Raises ScriptExpansionError or RemoteCommandError.
        """
        start = time.monotonic()
        info = parse_ssh_info(host)

        with tempfile.NamedTemporaryFile(mode="w", prefix=f"{os.path.basename(remote_path)}_", delete=False) as f:
            tmp_path = f.name
        try:
            os.chmod(tmp_path, 0o700)
            try:
                expanded = expand_script(script, self.settings.expansions)
            except ScriptExpansionError as e:
                e.host_id = host.id
                raise
            with open(tmp_path, "w") as f:
                f.write(expanded)

            scp_args = build_scp_command(tmp_path, remote_path, info, ssh_options(self.settings.ssh))
            result = await (
                self.executor.command().add(scp_args).redirect_error_to_output().run(timeout=FILE_TRANSFER_TIMEOUT)
            )
            if not result.ok:
                logger.warning(
                    f"Problem copying script to host {host.id} ({host.distro.id}): "
                    f"{shlex.join(scp_args)}: {result.output.strip()}"
                )
            result.raise_for_status(host_id=host.id, operation=f"copy script {remote_path}")
        finally:
            try:
                os.unlink(tmp_path)
            except OSError as e:
                logger.error(f"Error cleaning up script file {tmp_path} for host {host.id}: {e}")
            logger.debug(f"Copy script {remote_path} to host {host.id} took {time.monotonic() - start:.2f}s")
