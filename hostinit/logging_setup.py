"""Logging setup for the CLI and the provisioning worker."""

import logging
import sys

from hostinit.redact import SecretRedactingFilter


class _WorkerConsoleFormatter(logging.Formatter):
    """Console formatter for worker output.

    - ``hostinit.jobs.setup_host`` -> ``[setup_host]``
    - ``root`` -> ``[root]``
    """

    def format(self, record):
        if record.name.startswith("hostinit."):
            record.name = record.name.rsplit(".", 1)[-1]
        return super().format(record)


def _reset_root(level):
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for existing in list(root.filters):
        if isinstance(existing, SecretRedactingFilter):
            root.removeFilter(existing)
    return root


def setup_cli_logging(verbose=False):
    """Configure root logger with plain message format for CLI commands."""
    root = _reset_root(logging.DEBUG if verbose else logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
    root.addFilter(SecretRedactingFilter())


def setup_worker_logging(verbose=False):
    """Configure root logger with timestamps and a short logger name prefix."""
    root = _reset_root(logging.DEBUG if verbose else logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        _WorkerConsoleFormatter(
            "[%(asctime)s] [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
    root.addFilter(SecretRedactingFilter())
