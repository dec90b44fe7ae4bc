"""Site-level errors raised by the orchestrator, with project and step context."""


class SiteNotFound(LookupError):
    def __init__(self, project_name):
        self.project_name = project_name
        super().__init__(f"Site '{project_name}' not found")


class SiteOperationError(Exception):
    """A site operation failed at a named step."""

    def __init__(self, project_name, step, detail):
        self.project_name = project_name
        self.step = step
        self.detail = detail
        super().__init__(f"[{project_name}] {step}: {detail}")


class BackupError(SiteOperationError):
    pass


class RestoreError(SiteOperationError):
    pass
