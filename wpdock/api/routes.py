"""Dashboard HTTP routes under /api."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from wpdock.api.auth import bearer_token, check_credentials, require_auth
from wpdock.deploy.errors import SiteNotFound
from wpdock.deploy.params import SiteRequest, validate_project_name
from wpdock.provisioning.errors import ProvisioningError

logger = logging.getLogger(__name__)

_SECRET_KEYS = ("dbPassword", "adminPassword")


# ── Request schemas ─────────────────────────────────────────────


class LoginBody(BaseModel):
    username: str
    password: str


class CreateSiteBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_name: str = Field(alias="projectName")
    admin_username: str = Field(alias="adminUsername")
    admin_password: str = Field(alias="adminPassword")
    selected_plugins: list[str] = Field(default_factory=list, alias="selectedPlugins")

    def to_request(self) -> SiteRequest:
        return SiteRequest(
            project_name=self.project_name.strip(),
            admin_username=self.admin_username,
            admin_password=self.admin_password,
            plugins=[p.strip() for p in self.selected_plugins if p.strip()],
        )


class RestoreBody(BaseModel):
    backup_file: str = Field(alias="backupFile")


# ── Helpers ─────────────────────────────────────────────────────


def public_site(site) -> dict:
    """Site as returned to the dashboard, without stored credentials."""
    data = site.to_dict()
    for key in _SECRET_KEYS:
        data.pop(key, None)
    return data


async def _create_body(request: Request) -> CreateSiteBody:
    """Accept the dashboard's multipart form as well as a JSON body."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        payload = await request.json()
    else:
        form = await request.form()
        payload = {key: form.get(key, "") for key in ("projectName", "adminUsername", "adminPassword")}
        payload["selectedPlugins"] = form.getlist("selectedPlugins")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be an object")
    return CreateSiteBody.model_validate(payload)


def _validated_name(name):
    validate_project_name(name)
    return name


# ── Routers ─────────────────────────────────────────────────────


def create_auth_router() -> APIRouter:
    router = APIRouter(tags=["auth"])

    @router.post("/login")
    async def login(body: LoginBody, request: Request):
        config = request.app.state.config
        if not check_credentials(config, body.username, body.password):
            logger.warning(f"Failed login for user {body.username!r}")
            raise HTTPException(status_code=401, detail="Invalid credentials.")
        token = request.app.state.token_issuer.issue(body.username)
        return {"message": "Login successful!", "token": token}

    @router.post("/logout")
    async def logout(request: Request, token: str | None = Depends(bearer_token)):
        if token:
            request.app.state.token_issuer.revoke(token)
        return {"message": "Logout successful!"}

    return router


def create_sites_router() -> APIRouter:
    router = APIRouter(tags=["sites"], dependencies=[Depends(require_auth)])

    @router.post("/sites", status_code=202)
    async def create_site(request: Request):
        state = request.app.state
        body = await _create_body(request)
        site = await state.orchestrator.register_site(body.to_request())
        handle = state.runner.submit(f"create {site.project_name}", state.orchestrator.create_site(site))
        return {
            "message": f"Site '{site.project_name}' creation initiated.",
            "site": public_site(site),
            "taskId": handle.id,
        }

    @router.get("/sites")
    async def list_sites(request: Request):
        sites = await request.app.state.orchestrator.refresh_statuses()
        return [public_site(s) for s in sites]

    @router.get("/sites/{name}")
    async def get_site(name: str, request: Request):
        state = request.app.state
        site = await state.registry.get_site(name)
        if site is None:
            raise SiteNotFound(name)
        [site] = await state.orchestrator.refresh_statuses([site])
        return public_site(site)

    @router.delete("/sites/{name}")
    async def delete_site(name: str, request: Request):
        deleted = await request.app.state.orchestrator.delete_site(name)
        if not deleted:
            return {"message": "Site already deleted."}
        return {"message": "Site deleted successfully!"}

    @router.post("/sites/{name}/restart")
    async def restart_site(name: str, request: Request):
        await request.app.state.orchestrator.restart_site(name)
        return {"message": "Site restarted successfully!"}

    @router.get("/sites/{name}/plugins")
    async def list_plugins(name: str, request: Request):
        plugins = await request.app.state.orchestrator.list_plugins(name)
        return {"plugins": plugins}

    @router.post("/sites/{name}/plugins/{plugin}")
    async def install_plugin(name: str, plugin: str, request: Request):
        await request.app.state.orchestrator.install_plugin(name, plugin)
        return {"message": f"Plugin {plugin} installed successfully!"}

    @router.delete("/sites/{name}/plugins/{plugin}")
    async def remove_plugin(name: str, plugin: str, request: Request):
        await request.app.state.orchestrator.remove_plugin(name, plugin)
        return {"message": f"Plugin {plugin} uninstalled successfully!"}

    @router.get("/sites/{name}/backups")
    async def list_backups(name: str, request: Request):
        return await request.app.state.orchestrator.list_backups(_validated_name(name))

    @router.post("/sites/{name}/backups", status_code=202)
    async def create_backup(name: str, request: Request):
        state = request.app.state
        if await state.registry.get_site(_validated_name(name)) is None:
            raise SiteNotFound(name)
        handle = state.runner.submit(f"backup {name}", state.orchestrator.create_backup(name))
        return {"message": f"Backup of site '{name}' started.", "taskId": handle.id}

    @router.post("/sites/{name}/backups/restore", status_code=202)
    async def restore_backup(name: str, body: RestoreBody, request: Request):
        state = request.app.state
        if await state.registry.get_site(_validated_name(name)) is None:
            raise SiteNotFound(name)
        handle = state.runner.submit(f"restore {name}", state.orchestrator.restore_backup(name, body.backup_file))
        return {"message": f"Restore of site '{name}' from '{body.backup_file}' started.", "taskId": handle.id}

    @router.get("/tasks/{task_id}")
    async def get_task(task_id: str, request: Request):
        handle = request.app.state.runner.get(task_id)
        if handle is None:
            raise HTTPException(status_code=404, detail="Task not found.")
        return handle.to_dict()

    return router


def create_host_router() -> APIRouter:
    router = APIRouter(tags=["host"], dependencies=[Depends(require_auth)])

    @router.get("/vps/stats")
    async def vps_stats(request: Request):
        try:
            stats = await request.app.state.orchestrator.host_stats()
        except ValueError as e:
            # Unparseable probe output is a host-side failure, not a bad request
            raise ProvisioningError(str(e)) from e
        return stats.to_dict()

    @router.get("/activities")
    async def activities(request: Request, limit: int | None = None):
        entries = await request.app.state.activity.list(limit=limit)
        return [a.to_dict() for a in entries]

    return router
