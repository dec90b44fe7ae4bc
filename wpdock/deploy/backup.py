"""Backup and restore of a site's database and wp-content directory.

An artifact is ``backup_<timestamp>.tar.gz`` holding two members: a SQL dump
(``db_<timestamp>.sql``) and a gzipped tar of wp-content
(``wp-content_<timestamp>.tar.gz``). Artifacts live in a per-project
directory on the host. Nothing about them is stored locally.
"""

import contextlib
import logging
import posixpath
import re
import shlex
from datetime import datetime, timezone

from wpdock.deploy.compose import WP_ROOT, compose_cmd, container_name
from wpdock.deploy.errors import BackupError, RestoreError
from wpdock.deploy.params import InvalidNameError
from wpdock.provisioning.errors import CommandError, ProvisioningError
from wpdock.provisioning.readiness import wait_healthy

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".tar.gz"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"

_ARTIFACT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*\.tar\.gz$")

CONTAINER_RESTORE_DIR = "/tmp/wp-content-restore"
CONTAINER_RESTORE_ARCHIVE = "/tmp/wp-content-restore.tar.gz"
CONTENT_DIR = f"{WP_ROOT}/wp-content"


def validate_artifact_name(name):
    if not name or "/" in name or not _ARTIFACT_RE.match(name):
        raise InvalidNameError(f"Invalid backup artifact name {name!r}")
    return name


@contextlib.contextmanager
def _step(error_cls, project, step):
    """Re-raise remote failures as error_cls tagged with the step."""
    try:
        yield
    except ProvisioningError as e:
        logger.error(f"[{project}] {step} failed: {e}")
        raise error_cls(project, step, str(e)) from e


def _db_client_cmd(compose_file, site, tool):
    """Run a MariaDB client tool as root inside the db service."""
    return compose_cmd(
        compose_file,
        "exec -T",
        "-e", shlex.quote(f"MYSQL_PWD={site.db_password}"),
        "db", tool, "-uroot", shlex.quote(site.db_name),
    )


# ── Backup ──────────────────────────────────────────────────────


async def create_backup(session, site, project_dir, backup_dir, owner, now=None) -> str:
    """Snapshot one site into a new artifact. Returns the artifact file name.

    Each step aborts the backup on failure. Removing the intermediates is
    best-effort. A partial backup is not rolled back.
    """
    project = site.project_name
    timestamp = (now or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)
    compose_file = posixpath.join(project_dir, "docker-compose.yml")
    dump_name = f"db_{timestamp}.sql"
    content_name = f"wp-content_{timestamp}{ARTIFACT_SUFFIX}"
    artifact = f"backup_{timestamp}{ARTIFACT_SUFFIX}"
    dump_path = posixpath.join(project_dir, dump_name)
    content_path = posixpath.join(project_dir, content_name)
    bundle_path = posixpath.join(project_dir, artifact)

    logger.info(f"[{project}] Creating backup {artifact}")
    with _step(BackupError, project, "create backup directory"):
        await session.run(f"sudo install -d -o {shlex.quote(owner)} -g {shlex.quote(owner)} {shlex.quote(backup_dir)}")

    with _step(BackupError, project, "dump database"):
        await session.run(f"{_db_client_cmd(compose_file, site, 'mariadb-dump')} > {shlex.quote(dump_path)}", timeout=1800)

    with _step(BackupError, project, "archive wp-content"):
        await session.run(
            f"{compose_cmd(compose_file, 'exec -T wordpress tar czf - -C', WP_ROOT, 'wp-content')} > {shlex.quote(content_path)}",
            timeout=1800,
        )

    with _step(BackupError, project, "bundle artifact"):
        await session.run(
            f"tar czf {shlex.quote(bundle_path)} -C {shlex.quote(project_dir)} {shlex.quote(dump_name)} {shlex.quote(content_name)}",
            timeout=1800,
        )

    with _step(BackupError, project, "move artifact"):
        await session.run(f"mv {shlex.quote(bundle_path)} {shlex.quote(backup_dir)}/")

    try:
        await session.run(f"rm -f {shlex.quote(dump_path)} {shlex.quote(content_path)}")
    except CommandError as e:
        logger.warning(f"[{project}] Could not remove backup intermediates: {e}")

    logger.info(f"[{project}] Backup {artifact} stored in {backup_dir}")
    return artifact


async def list_backups(session, backup_dir) -> list[str]:
    """Artifact names, newest first. A missing directory yields an empty list."""
    quoted = shlex.quote(backup_dir)
    stdout, _ = await session.run(f"if [ -d {quoted} ]; then ls -1t {quoted}; fi")
    return [line.strip() for line in stdout.splitlines() if line.strip().endswith(ARTIFACT_SUFFIX)]


# ── Restore ─────────────────────────────────────────────────────


def _pick_members(names, artifact):
    dump = next((n for n in names if n.endswith(".sql")), None)
    content = next((n for n in names if n.endswith(ARTIFACT_SUFFIX) and n != artifact), None)
    return dump, content


def _content_swap_script():
    # Older artifacts stored absolute paths (var/www/html/wp-content), newer
    # ones are relative to WP_ROOT; the second mv covers the old layout.
    return " && ".join([
        f"mkdir -p {CONTAINER_RESTORE_DIR}",
        f"tar xzf {CONTAINER_RESTORE_ARCHIVE} -C {CONTAINER_RESTORE_DIR}",
        f"rm -rf {CONTENT_DIR}",
        f"(mv {CONTAINER_RESTORE_DIR}/wp-content {CONTENT_DIR} 2>/dev/null"
        f" || mv {CONTAINER_RESTORE_DIR}{CONTENT_DIR} {CONTENT_DIR})",
        f"chown -R www-data:www-data {CONTENT_DIR}",
    ])


async def restore_backup(session, site, project_dir, backup_dir, artifact, wait_db=wait_healthy):
    """Replace a site's database and wp-content with an artifact's contents.

    The stack is stopped while the database is replayed. Any failure leaves
    the site stopped or partially restored and raises RestoreError; the
    previous state is not brought back. The scratch directory on the host is
    always removed.
    """
    validate_artifact_name(artifact)
    project = site.project_name
    compose_file = posixpath.join(project_dir, "docker-compose.yml")
    artifact_path = posixpath.join(backup_dir, artifact)

    logger.info(f"[{project}] Restoring backup {artifact}")
    with _step(RestoreError, project, "create scratch directory"):
        stdout, _ = await session.run("mktemp -d /tmp/wpdock-restore.XXXXXX")
    scratch = stdout.strip() or f"/tmp/wpdock-restore-{project}"

    try:
        with _step(RestoreError, project, "extract artifact"):
            await session.run(f"tar xzf {shlex.quote(artifact_path)} -C {shlex.quote(scratch)}", timeout=1800)

        with _step(RestoreError, project, "inspect artifact"):
            stdout, _ = await session.run(f"ls -1 {shlex.quote(scratch)}")
        dump_name, content_name = _pick_members(stdout.split(), artifact)
        if dump_name is None or content_name is None:
            raise RestoreError(project, "inspect artifact", f"{artifact} does not contain a database dump and a content archive")
        dump_path = posixpath.join(scratch, dump_name)
        content_path = posixpath.join(scratch, content_name)

        with _step(RestoreError, project, "stop services"):
            await session.run(compose_cmd(compose_file, "stop"), timeout=300)

        with _step(RestoreError, project, "start database"):
            await session.run(compose_cmd(compose_file, "up -d db"), timeout=300)
            await wait_db(session, container_name(project, "db"))

        with _step(RestoreError, project, "import database"):
            await session.run(f"{_db_client_cmd(compose_file, site, 'mariadb')} < {shlex.quote(dump_path)}", timeout=1800)

        with _step(RestoreError, project, "start wordpress"):
            await session.run(compose_cmd(compose_file, "up -d wordpress"), timeout=300)

        with _step(RestoreError, project, "restore wp-content"):
            await session.run(compose_cmd(compose_file, "cp", shlex.quote(content_path), f"wordpress:{CONTAINER_RESTORE_ARCHIVE}"), timeout=1800)
            await session.run(compose_cmd(compose_file, "exec -T wordpress sh -c", shlex.quote(_content_swap_script())), timeout=1800)

        with _step(RestoreError, project, "remove container temp files"):
            await session.run(compose_cmd(compose_file, "exec -T wordpress rm -rf", CONTAINER_RESTORE_DIR, CONTAINER_RESTORE_ARCHIVE))

        with _step(RestoreError, project, "restart services"):
            await session.run(compose_cmd(compose_file, "restart"), timeout=300)
    finally:
        try:
            await session.run(f"rm -rf {shlex.quote(scratch)}")
        except CommandError as e:
            logger.warning(f"[{project}] Could not remove scratch directory {scratch}: {e}")

    logger.info(f"[{project}] Backup {artifact} restored")
