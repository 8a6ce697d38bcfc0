"""Exception types raised while provisioning a host."""

import logging


class ProvisioningError(Exception):
    """Base error annotated with the host, the operation and any remote output."""

    def __init__(self, message, host_id=None, operation=None, output=""):
        super().__init__(message)
        self.host_id = host_id
        self.operation = operation
        self.output = output

    def __str__(self):
        parts = [super().__str__()]
        if self.host_id:
            parts.append(f"host={self.host_id}")
        if self.operation:
            parts.append(f"operation={self.operation}")
        text = " ".join(parts)
        if self.output:
            text += f": command returned {self.output.strip()!r}"
        return text


class RemoteCommandError(ProvisioningError):
    """A local or SSH command exited non-zero or hit its deadline."""


class CloudProviderError(ProvisioningError):
    """The cloud provider API call failed."""


class ScriptExpansionError(ProvisioningError):
    """A script referenced a placeholder with no value and no default."""


class ConfigurationError(ProvisioningError):
    """Missing or invalid configuration; never retried."""


class HostNotFoundError(ProvisioningError):
    """The job's host does not exist in the store."""


class PersistenceError(ProvisioningError):
    """A store write failed."""


class ProvisioningCancelled(ProvisioningError):
    """The job was cancelled between steps."""


class DuplicateJobError(Exception):
    """A job with the same id is already known to the queue."""


def log_advisory(logger: logging.Logger, err: Exception | None, message: str, level=logging.ERROR) -> None:
    """Log an error that must not stop the current operation."""
    if err is None:
        return
    logger.log(level, f"{message}: {err}")
