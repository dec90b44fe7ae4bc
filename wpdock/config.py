"""Application configuration: optional config.yaml overridden by environment variables."""

import os
import secrets
from dataclasses import dataclass, field

import yaml

DEFAULT_SITES_ROOT = "/var/www"
DEFAULT_BACKUP_ROOT = "/var/backups/wpdock"
DEFAULT_CORS_ORIGINS = ["http://localhost:3000"]

_HOST_ENV_VARS = {
    "address": "SSH_HOST",
    "user": "SSH_USER",
    "password": "SSH_PASSWORD",
}


class ConfigError(Exception):
    """Required configuration is missing or malformed."""


@dataclass(frozen=True)
class HostConfig:
    """Connection details for the single site host."""

    address: str
    user: str
    password: str = field(repr=False)
    port: int = 22

    @property
    def login(self) -> str:
        """SSH login string (user@host)."""
        return f"{self.user}@{self.address}"


@dataclass
class AppConfig:
    """Everything the orchestrator and API need, passed explicitly."""

    host: HostConfig | None = None
    missing_host_vars: list[str] = field(default_factory=list)
    data_dir: str = "."
    sites_root: str = DEFAULT_SITES_ROOT
    backup_root: str = DEFAULT_BACKUP_ROOT
    jwt_secret: str = field(default_factory=lambda: secrets.token_urlsafe(32), repr=False)
    admin_username: str = "admin"
    admin_password: str = field(default="", repr=False)
    cors_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    def require_host(self) -> HostConfig:
        """Return the host config, or raise if any connection value is missing."""
        if self.host is None:
            missing = ", ".join(self.missing_host_vars) or ", ".join(_HOST_ENV_VARS.values())
            raise ConfigError(f"Host connection is not configured; set {missing}")
        return self.host

    @property
    def sites_path(self) -> str:
        return os.path.join(self.data_dir, "sites.json")

    @property
    def activities_path(self) -> str:
        return os.path.join(self.data_dir, "activities.json")


def _load_file(path):
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data


def _split_origins(value):
    if isinstance(value, str):
        return [o.strip() for o in value.split(",") if o.strip()]
    return list(value)


def load_config(path=None, env=None) -> AppConfig:
    """Build an AppConfig from an optional YAML file and the environment.

    Environment variables win over file values. Host connection values are
    not validated here; callers that need the host use ``require_host()``.
    """
    env = os.environ if env is None else env
    path = path or env.get("WPDOCK_CONFIG")
    data = _load_file(path) if path else {}

    host_data = data.get("host") or {}
    host_values = {
        key: env.get(var) or host_data.get(key) or ""
        for key, var in _HOST_ENV_VARS.items()
    }
    port = env.get("SSH_PORT") or host_data.get("port") or 22
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ConfigError(f"SSH port must be an integer, got {port!r}") from None

    missing = [var for key, var in _HOST_ENV_VARS.items() if not host_values[key]]
    host = None if missing else HostConfig(port=port, **host_values)

    config = AppConfig(
        host=host,
        missing_host_vars=missing,
        data_dir=env.get("WPDOCK_DATA_DIR") or data.get("data_dir") or ".",
        sites_root=env.get("WPDOCK_SITES_ROOT") or data.get("sites_root") or DEFAULT_SITES_ROOT,
        backup_root=env.get("WPDOCK_BACKUP_ROOT") or data.get("backup_root") or DEFAULT_BACKUP_ROOT,
        admin_username=env.get("WPDOCK_ADMIN_USER") or data.get("admin_username") or "admin",
        admin_password=env.get("WPDOCK_ADMIN_PASSWORD") or data.get("admin_password") or "",
    )
    jwt_secret = env.get("WPDOCK_JWT_SECRET") or data.get("jwt_secret")
    if jwt_secret:
        config.jwt_secret = jwt_secret
    origins = env.get("WPDOCK_CORS_ORIGINS") or data.get("cors_origins")
    if origins:
        config.cors_origins = _split_origins(origins)
    return config
