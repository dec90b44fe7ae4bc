"""SSH transport: run commands and upload files on the site host.

paramiko is blocking, so every call is pushed onto a worker thread with
``asyncio.to_thread`` to keep the orchestrator's event loop free.
"""

import asyncio
import contextlib
import logging

import paramiko

from wpdock.provisioning.errors import CommandError, ConnectError, TransferError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10
DEFAULT_COMMAND_TIMEOUT = 600


class SSHSession:
    """One authenticated connection to the host, owned by a single operation."""

    dry_run = False

    def __init__(self, client, host):
        self._client = client
        self.host = host

    async def run(self, command, timeout=DEFAULT_COMMAND_TIMEOUT):
        """Run a shell command. Returns (stdout, stderr), raises CommandError on non-zero exit."""
        logger.debug(f"ssh {self.host}: {command}")
        try:
            _, stdout_ch, stderr_ch = await asyncio.to_thread(self._client.exec_command, command, timeout=timeout)
            # Drain both streams at once: a full stderr window stalls a sequential stdout read
            stdout, stderr = await asyncio.gather(
                asyncio.to_thread(stdout_ch.read),
                asyncio.to_thread(stderr_ch.read),
            )
            exit_code = await asyncio.to_thread(stdout_ch.channel.recv_exit_status)
        except (paramiko.SSHException, OSError) as e:
            raise CommandError(command, -1, "", str(e)) from e
        stdout = stdout.decode(errors="replace")
        stderr = stderr.decode(errors="replace")
        if exit_code != 0:
            raise CommandError(command, exit_code, stdout, stderr)
        return stdout, stderr

    async def upload(self, remote_path, content):
        """Create or truncate remote_path and write content to it over SFTP."""
        await asyncio.to_thread(self._upload_blocking, remote_path, content)
        logger.info(f"Uploaded {remote_path}")

    def _upload_blocking(self, remote_path, content):
        try:
            sftp = self._client.open_sftp()
            try:
                with sftp.open(remote_path, "w") as f:
                    f.write(content.encode())
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as e:
            raise TransferError(remote_path, str(e)) from e

    async def close(self):
        await asyncio.to_thread(self._client.close)
        logger.debug(f"SSH connection to {self.host} closed")


class DryRunSession:
    """Stand-in session that logs commands instead of executing them."""

    dry_run = True

    def __init__(self, host):
        self.host = host

    async def run(self, command, timeout=DEFAULT_COMMAND_TIMEOUT):
        logger.info(f"[dry-run] ssh {self.host}: {command}")
        return "", ""

    async def upload(self, remote_path, content):
        logger.info(f"[dry-run] upload -> {self.host}:{remote_path}")

    async def close(self):
        pass


async def connect(host, user, credential, port=22, timeout=CONNECT_TIMEOUT):
    """Open an authenticated session to host. Raises ConnectError."""

    def _connect():
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=host,
                port=port,
                username=user,
                password=credential,
                timeout=timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise ConnectError(host, f"authentication failed for {user}") from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise ConnectError(host, str(e)) from e
        return client

    client = await asyncio.to_thread(_connect)
    logger.info(f"SSH connection established to {user}@{host}:{port}")
    return SSHSession(client, host)


async def connect_host(host_config):
    """Connect using a HostConfig."""
    return await connect(host_config.address, host_config.user, host_config.password, host_config.port)


def make_dry_run_connect():
    """Create a connect callable that hands out DryRunSessions."""

    async def _connect(host_config):
        return DryRunSession(host_config.address)

    return _connect


@contextlib.asynccontextmanager
async def open_session(connect_fn, host_config):
    """Open a session and close it on every exit path."""
    session = await connect_fn(host_config)
    try:
        yield session
    finally:
        await session.close()
