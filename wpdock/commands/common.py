"""Shared CLI plumbing: config loading, collaborator wiring, error reporting."""

import asyncio
import logging
import sys

from wpdock.config import ConfigError, HostConfig, load_config
from wpdock.deploy.errors import SiteNotFound, SiteOperationError
from wpdock.deploy.orchestrate import SiteOrchestrator
from wpdock.provisioning.errors import ProvisioningError
from wpdock.provisioning.ssh_transport import make_dry_run_connect
from wpdock.registry.activity import ActivityLog
from wpdock.registry.sites import DuplicateSiteError, JsonSiteRegistry, MemorySiteRegistry, RegistryCorruptError

logger = logging.getLogger(__name__)

DRY_RUN_HOST = HostConfig(address="dry-run.invalid", user="wpdock", password="")

# Failures reported as a one-line error and exit status 1
CLI_ERRORS = (
    ConfigError,
    ProvisioningError,
    SiteOperationError,
    SiteNotFound,
    DuplicateSiteError,
    RegistryCorruptError,
    ValueError,
    FileNotFoundError,
)


def load_app_config(args):
    return load_config(getattr(args, "config", None))


async def build_orchestrator(args, dry_run=False):
    """Wire an orchestrator for one CLI invocation.

    A dry run never connects and never writes local state: commands are
    logged, the registry starts as an in-memory copy of the real one and
    activities stay in memory.
    """
    config = load_app_config(args)
    if not dry_run:
        registry = JsonSiteRegistry(config.sites_path)
        return SiteOrchestrator(config, registry, ActivityLog(config.activities_path))

    if config.host is None:
        config.host = DRY_RUN_HOST
        logger.info(f"[dry-run] host not configured, using {DRY_RUN_HOST.login}")
    existing = await JsonSiteRegistry(config.sites_path).list_sites()
    return SiteOrchestrator(
        config,
        MemorySiteRegistry(existing),
        ActivityLog(),
        connect=make_dry_run_connect(),
    )


def run_async(coro_fn, args):
    """Run an async command handler, turning known failures into exit status 1."""
    try:
        result = asyncio.run(coro_fn(args))
    except CLI_ERRORS as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    if result is False:
        sys.exit(1)
