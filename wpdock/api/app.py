"""FastAPI application for the dashboard."""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from wpdock.api.auth import TokenIssuer
from wpdock.api.routes import create_auth_router, create_host_router, create_sites_router
from wpdock.config import ConfigError
from wpdock.deploy.errors import SiteNotFound, SiteOperationError
from wpdock.deploy.orchestrate import SiteOrchestrator
from wpdock.deploy.tasks import TaskRunner
from wpdock.provisioning.errors import ProvisioningError
from wpdock.registry.activity import ActivityLog
from wpdock.registry.sites import DuplicateSiteError, JsonSiteRegistry, RegistryCorruptError

logger = logging.getLogger(__name__)


def _error(status_code, error, details=None):
    body = {"error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def _install_error_handlers(app: FastAPI):
    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(SiteNotFound)
    async def not_found(request: Request, exc: SiteNotFound):
        return _error(404, "Site not found.", str(exc))

    @app.exception_handler(DuplicateSiteError)
    async def duplicate(request: Request, exc: DuplicateSiteError):
        return _error(409, str(exc))

    @app.exception_handler(ValueError)
    async def bad_input(request: Request, exc: ValueError):
        return _error(400, str(exc))

    @app.exception_handler(RegistryCorruptError)
    async def registry_unreadable(request: Request, exc: RegistryCorruptError):
        logger.error(f"Site registry is unreadable: {exc}")
        return _error(500, "Site registry is unreadable.", exc.reason)

    @app.exception_handler(ConfigError)
    async def not_configured(request: Request, exc: ConfigError):
        logger.error(f"Configuration error: {exc}")
        return _error(500, "Server is not configured.", str(exc))

    @app.exception_handler(SiteOperationError)
    async def operation_failed(request: Request, exc: SiteOperationError):
        return _error(500, f"Operation '{exc.step}' failed for site '{exc.project_name}'.", exc.detail)

    @app.exception_handler(ProvisioningError)
    async def host_failed(request: Request, exc: ProvisioningError):
        logger.error(f"Host operation failed: {exc}")
        return _error(500, "Host operation failed.", str(exc))


def create_app(config, orchestrator=None, registry=None, activity=None, runner=None) -> FastAPI:
    """Build the API app.

    Collaborators default to the JSON-backed registry and activity log under
    ``config.data_dir`` and an orchestrator that connects over SSH.
    """
    registry = registry or JsonSiteRegistry(config.sites_path)
    activity = activity or ActivityLog(config.activities_path)
    orchestrator = orchestrator or SiteOrchestrator(config, registry, activity)

    app = FastAPI(title="wpdock", description="WordPress site host dashboard API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.registry = registry
    app.state.activity = activity
    app.state.orchestrator = orchestrator
    app.state.runner = runner or TaskRunner()
    app.state.token_issuer = TokenIssuer(config.jwt_secret)

    _install_error_handlers(app)
    app.include_router(create_auth_router(), prefix="/api")
    app.include_router(create_sites_router(), prefix="/api")
    app.include_router(create_host_router(), prefix="/api")
    return app
