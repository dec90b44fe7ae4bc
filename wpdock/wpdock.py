#!/usr/bin/env python3
"""WordPress site host tools: CLI entrypoint."""

import argparse

from wpdock.commands.backup import register_backup_command
from wpdock.commands.serve import register_serve_command
from wpdock.commands.site import register_site_command
from wpdock.commands.stats import register_stats_command
from wpdock.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Provision and operate WordPress sites on a remote host")
    parser.add_argument("--config", default=None, help="Path to a config.yaml (default: WPDOCK_CONFIG env var)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_serve_command(subparsers)
    register_site_command(subparsers)
    register_backup_command(subparsers)
    register_stats_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
