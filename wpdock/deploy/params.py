"""Site creation parameters: name validation, port allocation, derived fields."""

import re
import secrets
import string
from dataclasses import dataclass, field

from wpdock.registry.sites import Site, SiteStatus

PORT_RANGE = (8100, 9099)
DB_PASSWORD_LENGTH = 16

_PROJECT_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{0,39}$")
_PLUGIN_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")
# Alphanumeric only: the password is embedded in YAML and shell commands
_PASSWORD_ALPHABET = string.ascii_letters + string.digits


class InvalidNameError(ValueError):
    """A project name or plugin slug is not safe to use on the host."""


def validate_project_name(name):
    if not name or not _PROJECT_NAME_RE.match(name):
        raise InvalidNameError(
            f"Invalid project name {name!r}: use 1-40 lowercase letters, digits, '-' or '_', starting with a letter or digit"
        )
    return name


def validate_plugin_slug(slug):
    if not slug or not _PLUGIN_SLUG_RE.match(slug):
        raise InvalidNameError(f"Invalid plugin slug {slug!r}")
    return slug


def generate_password(length=DB_PASSWORD_LENGTH):
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


def allocate_port(taken_ports, port_range=PORT_RANGE):
    """Lowest port in the range not held by another site."""
    taken = set(taken_ports)
    low, high = port_range
    for port in range(low, high + 1):
        if port not in taken:
            return port
    raise RuntimeError(f"No free site port left in {low}-{high}")


@dataclass
class SiteRequest:
    """What a caller asks for when creating a site."""

    project_name: str
    admin_username: str
    admin_password: str = field(repr=False)
    plugins: list[str] = field(default_factory=list)

    def validate(self):
        validate_project_name(self.project_name)
        for plugin in self.plugins:
            validate_plugin_slug(plugin)
        if not self.admin_username or not self.admin_password:
            raise ValueError("Admin username and admin password are required")


def build_site(request: SiteRequest, host_address, taken_ports) -> Site:
    """Derive a new Site record (status=creating) from a validated request."""
    request.validate()
    port = allocate_port(taken_ports)
    return Site(
        project_name=request.project_name,
        wp_port=port,
        db_name=f"{request.project_name}_db",
        db_password=generate_password(),
        site_url=f"http://{host_address}:{port}",
        plugins=list(request.plugins),
        status=SiteStatus.CREATING,
        admin_username=request.admin_username,
        admin_password=request.admin_password,
    )
