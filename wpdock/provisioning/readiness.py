"""Container readiness polling over the command channel."""

import asyncio
import logging
import shlex

from wpdock.provisioning.errors import CommandError, ReadinessTimeout

logger = logging.getLogger(__name__)

HEALTHY_MARKER = "healthy"
DEFAULT_MAX_ATTEMPTS = 24
DEFAULT_INTERVAL = 5


def health_status_cmd(resource_name):
    return f"docker inspect --format '{{{{.State.Health.Status}}}}' {shlex.quote(resource_name)}"


async def wait_healthy(session, resource_name, max_attempts=DEFAULT_MAX_ATTEMPTS, interval=DEFAULT_INTERVAL, sleep=asyncio.sleep):
    """Poll a container's health status until it equals the healthy marker.

    Fixed budget: ``max_attempts`` checks, ``interval`` seconds apart. No
    backoff. An inspection that itself fails counts as an unhealthy attempt.

    Raises:
        ReadinessTimeout: all attempts exhausted.
    """
    if session.dry_run:
        logger.info(f"[dry-run] wait for {resource_name} to become {HEALTHY_MARKER}")
        return

    cmd = health_status_cmd(resource_name)
    status = ""
    for attempt in range(1, max_attempts + 1):
        try:
            stdout, _ = await session.run(cmd, timeout=30)
        except CommandError as e:
            # Only a successful inspection can report healthy; stderr is kept for the log
            status = f"inspect failed: {e.stderr.strip() or f'exit {e.exit_code}'}"
        else:
            status = stdout.strip()
            if status == HEALTHY_MARKER:
                logger.info(f"{resource_name} is healthy (attempt {attempt}/{max_attempts})")
                return
        logger.info(f"Waiting for {resource_name} to be healthy... attempt {attempt}/{max_attempts}, status: {status}")
        if attempt < max_attempts:
            await sleep(interval)

    logger.error(f"{resource_name} did not become healthy after {max_attempts} attempts")
    raise ReadinessTimeout(resource_name, max_attempts, status)
