"""
main.py
-------
FastAPI application factory and entry point.

Application lifecycle:
  1. App is created by create_application().
  2. lifespan context manager runs on startup / shutdown.
  3. Routers are registered with their URL prefixes.
  4. Exception handlers turn tenancy errors into HTTP responses and
     normalise anything unexpected.

Run with:
    uvicorn main:app --reload              # development
    uvicorn main:app --workers 4           # production (no --reload)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ehr.api.routes import patients, tenants
from ehr.core.config import settings
from ehr.core.logging import configure_logging, get_logger
from ehr.db.session import engine
from ehr.tenancy import (
    ConnectionAcquisitionError,
    InvalidTenantIdentifierError,
    MigrationApplicationError,
    MigrationRegistryError,
    MissingTenantContextError,
    NamespaceBindingError,
    NamespaceCreationError,
    TenancyError,
)

logger = get_logger(__name__)

# Most specific first; lookup walks this in order
TENANCY_ERROR_STATUS: list[tuple[type[TenancyError], int]] = [
    (InvalidTenantIdentifierError, status.HTTP_400_BAD_REQUEST),
    (NamespaceBindingError, status.HTTP_404_NOT_FOUND),
    (ConnectionAcquisitionError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NamespaceCreationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (MigrationApplicationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (MigrationRegistryError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    # Repository code ran outside a tenant scope
    (MissingTenantContextError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: TenancyError) -> int:
    for error_type, status_code in TENANCY_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup / shutdown lifecycle hook.

    Startup:
      - Configure structured logging

    Shutdown:
      - Dispose the async engine (graceful connection pool drain)
    """
    configure_logging()
    logger.info(
        "Starting up",
        app=settings.APP_NAME,
        env=settings.APP_ENV,
        debug=settings.DEBUG,
        migrations_dir=str(settings.MIGRATIONS_DIR),
    )
    yield
    logger.info("Shutting down — disposing DB engine")
    await engine.dispose()


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Clinical records backend with schema-per-tenant isolation: "
            "tenant provisioning, migrations and tenant-scoped connections."
        ),
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── CORS ─────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(tenants.router)
    app.include_router(patients.router)

    # ── Exception Handlers ────────────────────────────────────────────────────

    @app.exception_handler(TenancyError)
    async def tenancy_exception_handler(
        request: Request, exc: TenancyError
    ) -> JSONResponse:
        status_code = status_for(exc)
        content = {"detail": str(exc), "tenant_id": exc.tenant_id}
        if isinstance(exc, MigrationApplicationError):
            content["migration_version"] = exc.version
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Tenancy error",
            path=request.url.path,
            error_type=type(exc).__name__,
            tenant_id=exc.tenant_id,
            error=str(exc),
        )
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # ── Health Check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["Health"], summary="Service health check")
    async def health() -> dict:
        return {"status": "ok", "app": settings.APP_NAME, "env": settings.APP_ENV}

    return app


app = create_application()
