"""Backup commands: create, list, restore."""

import logging

from wpdock.commands.common import build_orchestrator, run_async

logger = logging.getLogger(__name__)


def handle_create(args):
    """CLI handler for 'backup create'."""
    run_async(_handle_create, args)


async def _handle_create(args):
    orchestrator = await build_orchestrator(args)
    artifact = await orchestrator.create_backup(args.project_name)
    logger.info(f"Backup created: {artifact}")


def handle_list(args):
    """CLI handler for 'backup list'."""
    run_async(_handle_list, args)


async def _handle_list(args):
    orchestrator = await build_orchestrator(args)
    backups = await orchestrator.list_backups(args.project_name)
    if not backups:
        logger.info(f"No backups found for site '{args.project_name}'.")
        return
    for name in backups:
        logger.info(name)


def handle_restore(args):
    """CLI handler for 'backup restore'."""
    run_async(_handle_restore, args)


async def _handle_restore(args):
    orchestrator = await build_orchestrator(args)
    await orchestrator.restore_backup(args.project_name, args.artifact)
    logger.info(f"Site '{args.project_name}' restored from {args.artifact}.")


def register_backup_command(subparsers):
    """Register the 'backup' command with create/list/restore actions."""
    backup_parser = subparsers.add_parser("backup", help="Back up and restore sites")
    action_subparsers = backup_parser.add_subparsers(dest="action", required=True)

    create_parser = action_subparsers.add_parser("create", help="Snapshot a site's database and wp-content")
    create_parser.add_argument("project_name")
    create_parser.set_defaults(func=handle_create)

    list_parser = action_subparsers.add_parser("list", help="List a site's backups, newest first")
    list_parser.add_argument("project_name")
    list_parser.set_defaults(func=handle_list)

    restore_parser = action_subparsers.add_parser("restore", help="Restore a site from a backup artifact")
    restore_parser.add_argument("project_name")
    restore_parser.add_argument("artifact", help="Artifact name, e.g. backup_20240101120000.tar.gz")
    restore_parser.set_defaults(func=handle_restore)
