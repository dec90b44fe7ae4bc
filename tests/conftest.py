"""Shared pytest fixtures for all test modules."""

import inspect
import os
import subprocess
import sys
from dataclasses import dataclass

import pytest

from wpdock.config import AppConfig, HostConfig
from wpdock.deploy.orchestrate import SiteOrchestrator
from wpdock.provisioning.errors import CommandError
from wpdock.registry.activity import ActivityLog
from wpdock.registry.sites import MemorySiteRegistry, Site, SiteStatus

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))

HOST_ADDRESS = "203.0.113.10"


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def run_cli(project_root, tmp_path):
    """Return a callable that invokes the wpdock CLI as a subprocess.

    The CLI runs with a clean host configuration and its data dir in tmp_path.
    """

    def _run(*args, env=None):
        full_env = {k: v for k, v in os.environ.items() if not k.startswith(("SSH_", "WPDOCK_"))}
        full_env["WPDOCK_DATA_DIR"] = str(tmp_path)
        full_env.update(env or {})
        result = subprocess.run(
            [sys.executable, "-m", "wpdock.wpdock", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env=full_env,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


# ── Scripted remote session ─────────────────────────────────────────


@dataclass
class _Rule:
    substring: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    times: int | None = None
    handler: object = None


class FakeSession:
    """In-memory stand-in for SSHSession.

    Commands are answered by the first rule whose substring occurs in the
    command and which has uses left. Unmatched commands succeed with empty
    output. Every command and upload is recorded.
    """

    dry_run = False

    def __init__(self, host=HOST_ADDRESS):
        self.host = host
        self.commands: list[str] = []
        self.uploads: dict[str, str] = {}
        self.rules: list[_Rule] = []
        self.upload_error = None
        self.closed = 0

    def on(self, substring, stdout="", stderr="", exit_code=0, times=None, handler=None):
        self.rules.append(_Rule(substring, stdout, stderr, exit_code, times, handler))
        return self

    def fail(self, substring, stderr="boom", exit_code=1, times=None):
        return self.on(substring, stderr=stderr, exit_code=exit_code, times=times)

    async def run(self, command, timeout=600):
        self.commands.append(command)
        for rule in self.rules:
            if rule.substring not in command or rule.times == 0:
                continue
            if rule.times is not None:
                rule.times -= 1
            if rule.handler is not None:
                result = rule.handler(command)
                if inspect.isawaitable(result):
                    result = await result
                return result
            if rule.exit_code != 0:
                raise CommandError(command, rule.exit_code, rule.stdout, rule.stderr)
            return rule.stdout, rule.stderr
        return "", ""

    async def upload(self, remote_path, content):
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads[remote_path] = content

    async def close(self):
        self.closed += 1

    def ran(self, substring):
        """Commands containing substring, in order."""
        return [c for c in self.commands if substring in c]

    def index_of(self, substring):
        for i, command in enumerate(self.commands):
            if substring in command:
                return i
        raise AssertionError(f"no command containing {substring!r}; ran: {self.commands}")


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def healthy_session(fake_session):
    """A session whose containers all report healthy on the first check."""
    return fake_session.on("docker inspect", stdout="healthy\n")


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def no_sleep(sleeps):
    async def _sleep(seconds):
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        host=HostConfig(address=HOST_ADDRESS, user="deploy", password="ssh-password-123"),
        data_dir=str(tmp_path),
        sites_root="/var/www",
        backup_root="/var/backups/wpdock",
        jwt_secret="test-jwt-secret-value",
        admin_username="admin",
        admin_password="admin-password",
    )


@pytest.fixture
def make_orchestrator(app_config, no_sleep):
    """Factory: an orchestrator whose every session is the given FakeSession."""

    def _make(session, registry=None, activity=None, health_attempts=3):
        async def _connect(host_config):
            return session

        return SiteOrchestrator(
            app_config,
            registry if registry is not None else MemorySiteRegistry(),
            activity if activity is not None else ActivityLog(),
            connect=_connect,
            sleep=no_sleep,
            health_attempts=health_attempts,
            health_interval=5,
        )

    return _make


@pytest.fixture
def make_site():
    def _make(name="demo", port=8100, status=SiteStatus.ACTIVE, plugins=None):
        return Site(
            project_name=name,
            wp_port=port,
            db_name=f"{name}_db",
            db_password="DbPassw0rdXYZ123",
            site_url=f"http://{HOST_ADDRESS}:{port}",
            plugins=list(plugins or []),
            status=status,
            admin_username="admin",
            admin_password="SiteAdminPass1",
        )

    return _make
