"""Error taxonomy for remote host operations."""


class ProvisioningError(Exception):
    """Base class for failures talking to the remote host."""


class ConnectError(ProvisioningError):
    """Cannot reach or authenticate to the host."""

    def __init__(self, host, reason):
        self.host = host
        self.reason = reason
        super().__init__(f"Cannot connect to {host}: {reason}")


class CommandError(ProvisioningError):
    """A remote command exited non-zero. Carries both captured streams."""

    def __init__(self, command, exit_code, stdout="", stderr=""):
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip()
        msg = f"Command exited with status {exit_code}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class TransferError(ProvisioningError):
    """Uploading a file to the host failed."""

    def __init__(self, remote_path, reason):
        self.remote_path = remote_path
        self.reason = reason
        super().__init__(f"Failed to upload {remote_path}: {reason}")


class ReadinessTimeout(ProvisioningError):
    """A resource did not report healthy within the polling budget."""

    def __init__(self, resource_name, attempts, last_status=""):
        self.resource_name = resource_name
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(f"{resource_name} did not become healthy after {attempts} attempts (last status: {last_status or 'unknown'})")
