"""Local state: site records and the activity log."""

from wpdock.registry.activity import Activity, ActivityLog
from wpdock.registry.sites import (
    DuplicateSiteError,
    JsonSiteRegistry,
    MemorySiteRegistry,
    RegistryCorruptError,
    Site,
    SiteRegistry,
    SiteStatus,
)

__all__ = [
    "Activity",
    "ActivityLog",
    "DuplicateSiteError",
    "JsonSiteRegistry",
    "MemorySiteRegistry",
    "RegistryCorruptError",
    "Site",
    "SiteRegistry",
    "SiteStatus",
]
