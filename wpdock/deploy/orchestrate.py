"""Site lifecycle orchestration: create, compensate, delete, operate, back up."""

import asyncio
import contextlib
import json
import logging
import posixpath
import shlex
from enum import Enum

import httpx

from wpdock.config import ConfigError
from wpdock.deploy import backup
from wpdock.deploy.compose import COMPOSE_FILENAME, compose_cmd, container_name, generate_compose
from wpdock.deploy.errors import SiteNotFound, SiteOperationError
from wpdock.deploy.params import SiteRequest, build_site, validate_plugin_slug, validate_project_name
from wpdock.provisioning.errors import CommandError, ConnectError, ProvisioningError
from wpdock.provisioning.host_stats import collect_host_stats
from wpdock.provisioning.readiness import DEFAULT_INTERVAL, DEFAULT_MAX_ATTEMPTS, wait_healthy
from wpdock.provisioning.ssh_transport import connect_host, open_session
from wpdock.redact import register_secret
from wpdock.registry.sites import SiteStatus

logger = logging.getLogger(__name__)

COMPOSE_GRACE_SECONDS = 5
CLI_GRACE_SECONDS = 5
STATUS_PROBE_TIMEOUT = 10


class ProvisionStage(str, Enum):
    """Stages of site creation, in order. Each names the state reached."""

    CREATING = "creating"
    DIRECTORY_READY = "directory ready"
    CONFIG_UPLOADED = "config uploaded"
    COMPOSE_UP = "compose up"
    WORDPRESS_HEALTHY = "wordpress container healthy"
    CLI_HEALTHY = "cli container healthy"
    SOFTWARE_INSTALLED = "wordpress installed"
    PLUGINS_INSTALLED = "plugins installed"
    ACTIVE = "active"
    FAILED = "failed"


class SiteOrchestrator:
    """Drives every remote operation on the site host.

    Each public operation opens its own session and closes it before
    returning. Registry and activity updates happen here, so callers (API
    handlers, CLI commands, background tasks) only decide how to report.
    """

    def __init__(
        self,
        config,
        registry,
        activity,
        connect=connect_host,
        sleep=asyncio.sleep,
        health_attempts=DEFAULT_MAX_ATTEMPTS,
        health_interval=DEFAULT_INTERVAL,
    ):
        self.config = config
        self.registry = registry
        self.activity = activity
        self._connect = connect
        self._sleep = sleep
        self.health_attempts = health_attempts
        self.health_interval = health_interval

    # ── Paths and helpers ───────────────────────────────────────

    def project_dir(self, project_name):
        return posixpath.join(self.config.sites_root, project_name)

    def compose_file(self, project_name):
        return posixpath.join(self.project_dir(project_name), COMPOSE_FILENAME)

    def backup_dir(self, project_name):
        return posixpath.join(self.config.backup_root, project_name)

    def _session(self):
        return open_session(self._connect, self.config.require_host())

    async def _grace(self, session, seconds):
        if not session.dry_run:
            await self._sleep(seconds)

    async def _wait_healthy(self, session, resource_name):
        await wait_healthy(
            session,
            resource_name,
            max_attempts=self.health_attempts,
            interval=self.health_interval,
            sleep=self._sleep,
        )

    @contextlib.contextmanager
    def _stage(self, project, stage: ProvisionStage):
        """Wrap remote failures while working toward ``stage``."""
        try:
            yield
        except ProvisioningError as e:
            logger.error(f"[{project}] Failed before reaching '{stage.value}': {e}")
            raise SiteOperationError(project, stage.value, str(e)) from e
        logger.info(f"[{project}] Stage reached: {stage.value}")

    async def _require_site(self, project_name):
        site = await self.registry.get_site(project_name)
        if site is None:
            raise SiteNotFound(project_name)
        return site

    def _cli_cmd(self, project_name, *args):
        return compose_cmd(self.compose_file(project_name), "exec -T cli wp", *args)

    # ── Create ──────────────────────────────────────────────────

    async def register_site(self, request: SiteRequest):
        """Validate a request and record the new site as creating.

        Raises InvalidNameError / ValueError for bad input and
        DuplicateSiteError when the project name is taken.
        """
        host = self.config.require_host()
        request.validate()
        existing = await self.registry.list_sites()
        site = build_site(request, host.address, [s.wp_port for s in existing])
        register_secret(site.db_password)
        register_secret(site.admin_password)
        await self.registry.add_site(site)
        await self.activity.record(f"Site '{site.project_name}' creation initiated.", project=site.project_name)
        logger.info(f"[{site.project_name}] Registered on port {site.wp_port}")
        return site

    async def create_site(self, site) -> bool:
        """Run the remote create procedure for a registered site.

        Returns True when the site ends active. Any failure before plugin
        installation runs compensation and returns False with the site marked
        failed. Unexpected exceptions are compensated and re-raised.
        """
        project = site.project_name
        register_secret(site.db_password)
        register_secret(site.admin_password)
        try:
            async with self._session() as session:
                try:
                    await self._provision(session, site)
                except SiteOperationError as e:
                    await self.cleanup_site(project, reason=e.detail, session=session)
                    return False
                except Exception as e:
                    logger.exception(f"[{project}] Unexpected error during creation")
                    await self.cleanup_site(project, reason=str(e), session=session)
                    raise
        except (ConfigError, ConnectError) as e:
            logger.error(f"[{project}] Cannot open a session to the host: {e}")
            await self.cleanup_site(project, reason=str(e))
            return False

        await self.registry.update_status(project, SiteStatus.ACTIVE)
        await self.activity.record(f"Site '{project}' created successfully! URL: {site.site_url}", project=project)
        logger.info(f"[{project}] Site is active at {site.site_url}")
        return True

    async def _provision(self, session, site):
        project = site.project_name
        user = self.config.require_host().user
        project_dir = self.project_dir(project)
        compose_file = self.compose_file(project)

        with self._stage(project, ProvisionStage.DIRECTORY_READY):
            await session.run(f"sudo install -d -o {shlex.quote(user)} -g {shlex.quote(user)} {shlex.quote(project_dir)}")

        with self._stage(project, ProvisionStage.CONFIG_UPLOADED):
            await session.upload(compose_file, generate_compose(site))

        with self._stage(project, ProvisionStage.COMPOSE_UP):
            await session.run(compose_cmd(compose_file, "up -d"), timeout=1800)
        await self._grace(session, COMPOSE_GRACE_SECONDS)

        with self._stage(project, ProvisionStage.WORDPRESS_HEALTHY):
            await self._wait_healthy(session, container_name(project, "wordpress"))

        with self._stage(project, ProvisionStage.CLI_HEALTHY):
            await self._wait_healthy(session, container_name(project, "cli"))
        await self._grace(session, CLI_GRACE_SECONDS)

        with self._stage(project, ProvisionStage.SOFTWARE_INSTALLED):
            await session.run(
                self._cli_cmd(
                    project,
                    "core install",
                    shlex.quote(f"--url={site.site_url}"),
                    shlex.quote(f"--title={project}"),
                    shlex.quote(f"--admin_user={site.admin_username}"),
                    shlex.quote(f"--admin_password={site.admin_password}"),
                    shlex.quote(f"--admin_email=admin@{project}.com"),
                    "--skip-email",
                ),
                timeout=300,
            )

        await self._install_plugins(session, site)
        logger.info(f"[{project}] Stage reached: {ProvisionStage.PLUGINS_INSTALLED.value}")

    async def _install_plugins(self, session, site):
        """Install the requested plugins. A failed plugin is a warning, never fatal."""
        project = site.project_name
        for plugin in site.plugins:
            try:
                await session.run(self._cli_cmd(project, "plugin install", shlex.quote(plugin), "--activate"), timeout=300)
            except CommandError as e:
                logger.warning(f"[{project}] Failed to install plugin '{plugin}': {e}")
                await self.activity.record(f"Failed to install plugin '{plugin}' on site '{project}'.", level="warning", project=project)
            else:
                logger.info(f"[{project}] Plugin '{plugin}' installed")
                await self.activity.record(f"Plugin '{plugin}' installed successfully on site '{project}'.", project=project)

    # ── Compensation and teardown ───────────────────────────────

    async def _dir_exists(self, session, path):
        try:
            await session.run(f"test -d {shlex.quote(path)}")
        except CommandError as e:
            if e.exit_code == 1:
                return False
            raise
        return True

    async def _remove_remote(self, session, project, strict):
        """Take down the stack and delete the project directory.

        With ``strict`` a failing ``compose down`` aborts; otherwise it is
        logged and the directory is removed anyway. Without a project
        directory, an exited orphan WordPress container is removed instead.
        """
        project_dir = self.project_dir(project)
        if await self._dir_exists(session, project_dir):
            try:
                await session.run(compose_cmd(self.compose_file(project), "down -v --remove-orphans"), timeout=300)
            except CommandError as e:
                if strict:
                    raise
                logger.warning(f"[{project}] docker compose down failed, removing directory anyway: {e}")
            await session.run(f"sudo rm -rf {shlex.quote(project_dir)}")
            logger.info(f"[{project}] Removed {project_dir}")
            return

        wordpress = container_name(project, "wordpress")
        name_filter = shlex.quote(f"name=^/{wordpress}$")
        stdout, _ = await session.run(f"docker ps -a --filter {name_filter} --format '{{{{.Status}}}}'")
        status = stdout.strip()
        if status.startswith("Exited"):
            await session.run(f"docker rm {shlex.quote(wordpress)}")
            logger.info(f"[{project}] Removed exited container {wordpress}")
        elif status:
            logger.warning(f"[{project}] Container {wordpress} is not exited ({status}), leaving it in place")

    async def cleanup_site(self, project_name, reason=None, session=None):
        """Compensate a failed creation. Always ends with the site marked failed.

        Cleanup errors are logged, never raised. Without a session a fresh one
        is opened; if that fails too, remote cleanup is skipped.
        """
        logger.info(f"[{project_name}] Cleaning up resources for failed site")
        try:
            if session is not None:
                await self._remove_remote(session, project_name, strict=False)
            else:
                async with self._session() as fresh:
                    await self._remove_remote(fresh, project_name, strict=False)
        except (ConfigError, ConnectError) as e:
            logger.warning(f"[{project_name}] Skipping remote cleanup, no session: {e}")
        except ProvisioningError as e:
            logger.error(f"[{project_name}] Cleanup failed: {e}")

        await self.registry.update_status(project_name, SiteStatus.FAILED)
        message = f"Site '{project_name}' creation failed and resources cleaned up."
        if reason:
            message = f"Site '{project_name}' creation failed: {reason}. Resources cleaned up."
        await self.activity.record(message, level="error", project=project_name)

    async def delete_site(self, project_name) -> bool:
        """Tear down a site and drop its record. Returns False if it was not registered."""
        site = await self.registry.get_site(project_name)
        if site is None:
            logger.info(f"[{project_name}] Site already deleted")
            return False
        try:
            async with self._session() as session:
                await self._remove_remote(session, project_name, strict=True)
        except ProvisioningError as e:
            await self.activity.record(f"Failed to delete site '{project_name}': {e}", level="error", project=project_name)
            raise SiteOperationError(project_name, "delete", str(e)) from e
        await self.registry.remove_site(project_name)
        await self.activity.record(f"Site '{project_name}' deleted successfully!", project=project_name)
        return True

    # ── Site operations ─────────────────────────────────────────

    async def _site_command(self, project_name, step, command, failure_message, timeout=300):
        """Run one command against a registered site, recording failures as activities."""
        try:
            async with self._session() as session:
                stdout, _ = await session.run(command, timeout=timeout)
        except ProvisioningError as e:
            logger.error(f"[{project_name}] {step} failed: {e}")
            await self.activity.record(f"{failure_message}: {e}", level="error", project=project_name)
            raise SiteOperationError(project_name, step, str(e)) from e
        return stdout

    async def restart_site(self, project_name):
        await self._require_site(project_name)
        await self._site_command(
            project_name,
            "restart",
            compose_cmd(self.compose_file(project_name), "restart"),
            f"Failed to restart site '{project_name}'",
        )
        await self.activity.record(f"Site '{project_name}' restarted successfully!", project=project_name)

    async def list_plugins(self, project_name) -> list[str]:
        await self._require_site(project_name)
        stdout = await self._site_command(
            project_name,
            "list plugins",
            self._cli_cmd(project_name, "plugin list --field=name --format=json"),
            f"Failed to list plugins for site '{project_name}'",
        )
        if not stdout.strip():
            return []
        try:
            plugins = json.loads(stdout)
        except json.JSONDecodeError as e:
            await self.activity.record(
                f"Failed to list plugins for site '{project_name}': Failed to parse plugin list.", level="error", project=project_name
            )
            raise SiteOperationError(project_name, "list plugins", f"unparseable plugin list: {e}") from e
        return [str(p) for p in plugins]

    async def install_plugin(self, project_name, plugin):
        validate_plugin_slug(plugin)
        await self._require_site(project_name)
        await self._site_command(
            project_name,
            "install plugin",
            self._cli_cmd(project_name, "plugin install", shlex.quote(plugin), "--activate"),
            f"Failed to install plugin '{plugin}' on site '{project_name}'",
        )
        if await self.registry.update_plugins(project_name, add=plugin) is None:
            logger.warning(f"[{project_name}] Site was removed while installing plugin '{plugin}'")
        await self.activity.record(f"Plugin '{plugin}' installed successfully on site '{project_name}'.", project=project_name)

    async def remove_plugin(self, project_name, plugin):
        validate_plugin_slug(plugin)
        await self._require_site(project_name)
        await self._site_command(
            project_name,
            "remove plugin",
            self._cli_cmd(project_name, "plugin delete", shlex.quote(plugin)),
            f"Failed to delete plugin '{plugin}' from site '{project_name}'",
        )
        if await self.registry.update_plugins(project_name, remove=plugin) is None:
            logger.warning(f"[{project_name}] Site was removed while deleting plugin '{plugin}'")
        await self.activity.record(f"Plugin '{plugin}' uninstalled successfully from site '{project_name}'.", project=project_name)

    async def host_stats(self):
        async with self._session() as session:
            stats = await collect_host_stats(session)
        await self.activity.record("VPS stats requested.")
        return stats

    # ── Status probing ──────────────────────────────────────────

    async def refresh_status(self, site, client):
        """Probe one site over HTTP and overwrite its status. Returns the site."""
        if site.status in (SiteStatus.CREATING, SiteStatus.FAILED):
            return site
        try:
            response = await client.get(site.site_url)
        except httpx.HTTPError as e:
            logger.info(f"[{site.project_name}] Status probe failed: {e}")
            status = SiteStatus.DOWN
        else:
            status = SiteStatus.ACTIVE if response.is_success else SiteStatus.ERROR
        updated = await self.registry.update_status(site.project_name, status)
        return updated or site

    async def refresh_statuses(self, sites=None):
        """Probe sites concurrently. Returns the sites with current statuses."""
        if sites is None:
            sites = await self.registry.list_sites()
        async with httpx.AsyncClient(timeout=STATUS_PROBE_TIMEOUT, follow_redirects=True) as client:
            return list(await asyncio.gather(*(self.refresh_status(site, client) for site in sites)))

    # ── Backup and restore ──────────────────────────────────────

    async def create_backup(self, project_name, now=None) -> str:
        site = await self._require_site(project_name)
        user = self.config.require_host().user
        try:
            async with self._session() as session:
                artifact = await backup.create_backup(
                    session, site, self.project_dir(project_name), self.backup_dir(project_name), user, now=now
                )
        except (SiteOperationError, ProvisioningError) as e:
            await self.activity.record(f"Backup of site '{project_name}' failed: {e}", level="error", project=project_name)
            raise
        await self.activity.record(f"Backup '{artifact}' created for site '{project_name}'.", project=project_name)
        return artifact

    async def list_backups(self, project_name) -> list[str]:
        validate_project_name(project_name)
        await self._require_site(project_name)
        async with self._session() as session:
            return await backup.list_backups(session, self.backup_dir(project_name))

    async def restore_backup(self, project_name, artifact):
        backup.validate_artifact_name(artifact)
        site = await self._require_site(project_name)

        async def wait_db(session, resource_name):
            await self._wait_healthy(session, resource_name)

        try:
            async with self._session() as session:
                await backup.restore_backup(
                    session, site, self.project_dir(project_name), self.backup_dir(project_name), artifact, wait_db=wait_db
                )
        except (SiteOperationError, ProvisioningError) as e:
            await self.activity.record(
                f"Restore of site '{project_name}' from '{artifact}' failed: {e}", level="error", project=project_name
            )
            raise
        await self.activity.record(f"Site '{project_name}' restored from backup '{artifact}'.", project=project_name)
