"""Remote host access: SSH command channel, file upload, readiness polling."""

from wpdock.provisioning.errors import (
    CommandError,
    ConnectError,
    ProvisioningError,
    ReadinessTimeout,
    TransferError,
)
from wpdock.provisioning.host_stats import HostStats, collect_host_stats
from wpdock.provisioning.readiness import HEALTHY_MARKER, wait_healthy
from wpdock.provisioning.ssh_transport import (
    DryRunSession,
    SSHSession,
    connect,
    connect_host,
    make_dry_run_connect,
    open_session,
)

__all__ = [
    "CommandError",
    "ConnectError",
    "ProvisioningError",
    "ReadinessTimeout",
    "TransferError",
    "HostStats",
    "collect_host_stats",
    "HEALTHY_MARKER",
    "wait_healthy",
    "DryRunSession",
    "SSHSession",
    "connect",
    "connect_host",
    "make_dry_run_connect",
    "open_session",
]
