#!/usr/bin/env python3
"""Host provisioning tools: CLI entrypoint."""

import argparse

from hostinit.commands.setup import register_setup_command
from hostinit.commands.status import register_status_command
from hostinit.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Host provisioning tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_setup_command(subparsers)
    register_status_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
