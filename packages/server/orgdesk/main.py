"""
OrgDesk API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from orgdesk.api.v1 import router as api_v1_router
from orgdesk.core.config import get_settings
from orgdesk.core.database import engine, init_db
from orgdesk.core.errors import OrgDeskError
from orgdesk.core.logging import configure_logging
from orgdesk.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware

settings = get_settings()
log = structlog.get_logger()


def _error(code: str, message: str, status: int) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"error": {"code": code, "message": message, "status": status}},
    )


async def orgdesk_error_handler(request: Request, exc: OrgDeskError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    # Raised by services re-validating merged settings or cross-field rules
    fields = ", ".join(".".join(str(p) for p in err["loc"]) or "body" for err in exc.errors())
    return _error("VALIDATION_ERROR", f"Invalid value for: {fields}", 422)


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    route = request.scope.get("route")
    tenant = getattr(request.state, "tenant", None)
    user_id = getattr(request.state, "user_id", None)
    log.error(
        "db.error",
        exc_info=exc,
        operation=f"{request.method} {getattr(route, 'path', request.url.path)}",
        organization_id=str(tenant.organization_id) if tenant else None,
        user_id=str(user_id) if user_id else None,
    )
    return _error("INTERNAL_ERROR", "An unexpected error occurred.", 500)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="OrgDesk",
        description="Multi-tenant organizations, projects and tasks.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(OrgDeskError, orgdesk_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint: the database must answer."""
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError):
            log.warning("db.unavailable")
            return _error("NOT_READY", "Database unavailable", 503)
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("OrgDesk starting", debug=settings.debug)
        if settings.create_tables:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("OrgDesk shutting down")
        await engine.dispose()

    return app


app = create_app()
