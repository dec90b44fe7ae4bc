"""Site registry: durable store of site records keyed by project name."""

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class SiteStatus(str, Enum):
    CREATING = "creating"
    ACTIVE = "active"
    FAILED = "failed"
    DOWN = "down"
    ERROR = "error"


class DuplicateSiteError(Exception):
    """A site with this project name is already registered."""


class RegistryCorruptError(Exception):
    """The persisted site registry cannot be parsed."""

    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__(f"Corrupt site registry {path}: {reason}")


# Python attribute -> JSON key. Keys match the records written by earlier releases.
_JSON_KEYS = {
    "project_name": "projectName",
    "wp_port": "wpPort",
    "db_name": "dbName",
    "db_password": "dbPassword",
    "site_url": "siteURL",
    "plugins": "plugins",
    "status": "status",
    "admin_username": "adminUsername",
    "admin_password": "adminPassword",
    "last_checked": "lastChecked",
}


@dataclass
class Site:
    """One provisioned WordPress instance."""

    project_name: str
    wp_port: int
    db_name: str
    db_password: str = field(repr=False)
    site_url: str
    plugins: list[str] = field(default_factory=list)
    status: SiteStatus = SiteStatus.CREATING
    admin_username: str = ""
    admin_password: str = field(default="", repr=False)
    last_checked: str = ""

    def to_dict(self) -> dict:
        data = {json_key: getattr(self, attr) for attr, json_key in _JSON_KEYS.items()}
        data["status"] = self.status.value
        data["plugins"] = list(self.plugins)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Site":
        kwargs = {attr: data[json_key] for attr, json_key in _JSON_KEYS.items() if json_key in data}
        kwargs["status"] = SiteStatus(kwargs.get("status", SiteStatus.CREATING))
        kwargs["plugins"] = list(kwargs.get("plugins") or [])
        return cls(**kwargs)


def _now():
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class SiteRegistry(Protocol):
    async def list_sites(self) -> list[Site]: ...
    async def get_site(self, name: str) -> Site | None: ...
    async def add_site(self, site: Site) -> None: ...
    async def upsert_site(self, site: Site) -> None: ...
    async def remove_site(self, name: str) -> bool: ...
    async def update_status(self, name: str, status: SiteStatus) -> Site | None: ...
    async def update_plugins(self, name: str, add: str | None = None, remove: str | None = None) -> Site | None: ...


class _ListBackedRegistry:
    """Read-modify-write over an ordered list of sites, serialized by one lock."""

    def __init__(self):
        self._lock = asyncio.Lock()

    def _load(self) -> list[Site]:
        raise NotImplementedError

    def _save(self, sites: list[Site]) -> None:
        raise NotImplementedError

    async def list_sites(self):
        async with self._lock:
            return self._load()

    async def get_site(self, name):
        async with self._lock:
            return next((s for s in self._load() if s.project_name == name), None)

    async def add_site(self, site):
        async with self._lock:
            sites = self._load()
            if any(s.project_name == site.project_name for s in sites):
                raise DuplicateSiteError(f"Site '{site.project_name}' already exists")
            sites.append(site)
            self._save(sites)

    async def upsert_site(self, site):
        async with self._lock:
            sites = self._load()
            for i, existing in enumerate(sites):
                if existing.project_name == site.project_name:
                    sites[i] = site
                    break
            else:
                sites.append(site)
            self._save(sites)

    async def remove_site(self, name):
        async with self._lock:
            sites = self._load()
            remaining = [s for s in sites if s.project_name != name]
            if len(remaining) == len(sites):
                return False
            self._save(remaining)
            return True

    async def update_status(self, name, status):
        """Overwrite a site's status. Returns the updated site, or None if unknown."""
        async with self._lock:
            sites = self._load()
            for site in sites:
                if site.project_name == name:
                    site.status = SiteStatus(status)
                    site.last_checked = _now()
                    self._save(sites)
                    return site
        logger.warning(f"Status update for unknown site '{name}' ignored")
        return None

    async def update_plugins(self, name, add=None, remove=None):
        """Add and/or remove one plugin on a stored site, leaving other fields as stored.

        Returns the updated site, or None if the site is no longer registered.
        """
        async with self._lock:
            sites = self._load()
            for site in sites:
                if site.project_name == name:
                    if add is not None and add not in site.plugins:
                        site.plugins.append(add)
                    if remove is not None and remove in site.plugins:
                        site.plugins.remove(remove)
                    self._save(sites)
                    return site
        logger.warning(f"Plugin update for unknown site '{name}' ignored")
        return None


class MemorySiteRegistry(_ListBackedRegistry):
    """In-process registry for dry runs and tests."""

    def __init__(self, sites=None):
        super().__init__()
        self._records = [s.to_dict() for s in sites or []]

    def _load(self):
        return [Site.from_dict(r) for r in self._records]

    def _save(self, sites):
        self._records = [s.to_dict() for s in sites]


class JsonSiteRegistry(_ListBackedRegistry):
    """Registry persisted as an indented JSON array. Missing file means no sites."""

    def __init__(self, path):
        super().__init__()
        self.path = path

    def _load(self):
        if not os.path.exists(self.path):
            return []
        with open(self.path) as f:
            raw = f.read()
        if not raw.strip():
            return []
        try:
            records = json.loads(raw)
        except json.JSONDecodeError as e:
            raise RegistryCorruptError(self.path, str(e)) from e
        if not isinstance(records, list):
            raise RegistryCorruptError(self.path, "expected a JSON array of sites")
        try:
            return [Site.from_dict(r) for r in records]
        except (KeyError, TypeError, ValueError) as e:
            raise RegistryCorruptError(self.path, f"invalid site record: {e!r}") from e

    def _save(self, sites):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        # Write a sibling temp file, then atomically replace
        fd, tmp_path = tempfile.mkstemp(prefix=".sites-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump([s.to_dict() for s in sites], f, indent=2)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise
