"""Deploy library: compose generation, site orchestration, backups, background tasks."""

from wpdock.deploy.compose import compose_cmd, container_name, generate_compose
from wpdock.deploy.errors import BackupError, RestoreError, SiteNotFound, SiteOperationError
from wpdock.deploy.orchestrate import ProvisionStage, SiteOrchestrator
from wpdock.deploy.params import InvalidNameError, SiteRequest, build_site
from wpdock.deploy.tasks import TaskHandle, TaskRunner

__all__ = [
    "compose_cmd",
    "container_name",
    "generate_compose",
    "BackupError",
    "RestoreError",
    "SiteNotFound",
    "SiteOperationError",
    "ProvisionStage",
    "SiteOrchestrator",
    "InvalidNameError",
    "SiteRequest",
    "build_site",
    "TaskHandle",
    "TaskRunner",
]
