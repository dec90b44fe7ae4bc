"""Stats command: host CPU and RAM utilization."""

import logging

from wpdock.commands.common import build_orchestrator, run_async

logger = logging.getLogger(__name__)


def handle_stats(args):
    """CLI handler for 'stats'."""
    run_async(_handle_stats, args)


async def _handle_stats(args):
    orchestrator = await build_orchestrator(args)
    stats = await orchestrator.host_stats()
    logger.info(f"CPU: {stats.cpu_usage:.1f}%")
    logger.info(f"RAM: {stats.ram_usage:.1f}%")


def register_stats_command(subparsers):
    """Register the stats subcommand."""
    parser = subparsers.add_parser("stats", help="Show host CPU and RAM usage")
    parser.set_defaults(func=handle_stats)
