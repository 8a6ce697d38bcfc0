"""Status command: one line per host from the hosts file."""

import logging

from hostinit.host.store import HostStore

logger = logging.getLogger(__name__)


def handle_status(args):
    """Handle the status command."""
    hosts = HostStore.from_file(args.hosts).all()
    if not hosts:
        logger.info(f"No hosts in {args.hosts}")
        return
    for h in hosts:
        provisioned = "yes" if h.provisioned else "no"
        logger.info(
            f"{h.id:<24} {h.status.value:<24} attempts={h.provision_attempts:<3} "
            f"provisioned={provisioned:<4} {h.address or '-'}"
        )


def register_status_command(subparsers):
    """Register the status subcommand."""
    parser = subparsers.add_parser("status", help="Show provisioning status of hosts")
    parser.add_argument("--hosts", default="hosts.yaml", help="Hosts YAML file (default: hosts.yaml)")
    parser.set_defaults(func=handle_status)
