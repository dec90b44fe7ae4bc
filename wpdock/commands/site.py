"""Site commands: create, list, delete, restart."""

import logging
import os

from wpdock.commands.common import build_orchestrator, run_async
from wpdock.deploy.params import SiteRequest

logger = logging.getLogger(__name__)


# ── CLI handlers ───────────────────────────────────────────────────


def handle_create(args):
    """CLI handler for 'site create'."""
    run_async(_handle_create, args)


async def _handle_create(args):
    orchestrator = await build_orchestrator(args, dry_run=args.dry_run)
    request = SiteRequest(
        project_name=args.project_name,
        admin_username=args.admin_user,
        admin_password=args.admin_password or os.environ.get("WPDOCK_SITE_ADMIN_PASSWORD", ""),
        plugins=args.plugin or [],
    )
    site = await orchestrator.register_site(request)
    logger.info(f"Creating site '{site.project_name}' on port {site.wp_port}...")
    ok = await orchestrator.create_site(site)
    if not ok:
        logger.error(f"Site '{site.project_name}' creation failed. See the log above for the failing step.")
        return False

    status = "dry-run (not deployed)" if args.dry_run else "active"
    logger.info(f"\nSite: {site.project_name}")
    logger.info(f"URL: {site.site_url}")
    logger.info(f"Admin: {site.admin_username}")
    logger.info(f"Status: {status}")
    return True


def handle_list(args):
    """CLI handler for 'site list'."""
    run_async(_handle_list, args)


async def _handle_list(args):
    orchestrator = await build_orchestrator(args)
    if args.refresh:
        sites = await orchestrator.refresh_statuses()
    else:
        sites = await orchestrator.registry.list_sites()
    if not sites:
        logger.info("No sites registered.")
        return
    logger.info(f"{'NAME':<24} {'PORT':<6} {'STATUS':<9} URL")
    for site in sites:
        logger.info(f"{site.project_name:<24} {site.wp_port:<6} {site.status.value:<9} {site.site_url}")


def handle_delete(args):
    """CLI handler for 'site delete'."""
    run_async(_handle_delete, args)


async def _handle_delete(args):
    orchestrator = await build_orchestrator(args)
    if await orchestrator.delete_site(args.project_name):
        logger.info(f"Site '{args.project_name}' deleted.")
    else:
        logger.info(f"Site '{args.project_name}' already deleted.")


def handle_restart(args):
    """CLI handler for 'site restart'."""
    run_async(_handle_restart, args)


async def _handle_restart(args):
    orchestrator = await build_orchestrator(args)
    await orchestrator.restart_site(args.project_name)
    logger.info(f"Site '{args.project_name}' restarted.")


def register_site_command(subparsers):
    """Register the 'site' command with its action subparsers."""
    site_parser = subparsers.add_parser("site", help="Manage WordPress sites")
    action_subparsers = site_parser.add_subparsers(dest="action", required=True)

    create_parser = action_subparsers.add_parser("create", help="Provision a new site on the host")
    create_parser.add_argument("project_name", help="Project name (lowercase letters, digits, '-' and '_')")
    create_parser.add_argument("--admin-user", default="admin", help="WordPress admin username (default: admin)")
    create_parser.add_argument(
        "--admin-password",
        default=None,
        help="WordPress admin password (default: WPDOCK_SITE_ADMIN_PASSWORD env var)",
    )
    create_parser.add_argument(
        "--plugin",
        action="append",
        help="Plugin slug to install and activate (repeatable)",
    )
    create_parser.add_argument("--dry-run", action="store_true", help="Print commands without connecting to the host")
    create_parser.set_defaults(func=handle_create)

    list_parser = action_subparsers.add_parser("list", help="List registered sites")
    list_parser.add_argument("--refresh", action="store_true", help="Probe each site over HTTP and update its status")
    list_parser.set_defaults(func=handle_list)

    delete_parser = action_subparsers.add_parser("delete", help="Tear down a site and remove its record")
    delete_parser.add_argument("project_name")
    delete_parser.set_defaults(func=handle_delete)

    restart_parser = action_subparsers.add_parser("restart", help="Restart a site's containers")
    restart_parser.add_argument("project_name")
    restart_parser.set_defaults(func=handle_restart)
