"""Access Control Service - FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import Settings, get_settings
from api.v1.router import api_v1_router
from api.routes import health
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from core.permissions import validate_catalog
from core.security import IdentityProvider, JWTIdentityProvider
from db.database import Database
from services.audit_service import AuditLogger
from services.seed_service import seed_catalog


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request, call_next):
        response = await call_next(request)

        # Standard security headers
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"

        if self.settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    # Startup
    settings: Settings = app.state.settings
    setup_logging(settings)

    # Validate secrets are not using defaults in production
    try:
        settings.validate_secrets()
    except RuntimeError as e:
        print(f"[startup] FATAL: {e}")
        raise

    # Every permission a route or role bundle names must exist in the catalog
    validate_catalog()

    database: Database = app.state.database
    await database.create_all()
    print("[startup] Database schema ready")

    if settings.SEED_ON_STARTUP:
        async with database.session() as session:
            created = await seed_catalog(session)
        print(f"[startup] Catalog seeded: {created}")

    print(f"[startup] {settings.APP_NAME} v{settings.APP_VERSION} started ({settings.ENVIRONMENT})")
    yield
    # Shutdown
    print("[shutdown] Application shutting down...")
    await database.close()


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    identity_provider: Optional[IdentityProvider] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to ones built from ``settings``; tests pass their own.
    """
    settings = settings or get_settings()
    database = database or Database.from_url(settings.DATABASE_URL, settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Role-based access control: permission catalog, roles, "
                    "user assignments, direct overrides and an audit trail.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.database = database
    app.state.identity_provider = identity_provider or JWTIdentityProvider(settings)
    app.state.audit_logger = audit_logger or AuditLogger(database.session_factory)

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # Security headers middleware
    app.add_middleware(SecurityHeadersMiddleware, settings=settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    # Global exception handlers
    setup_exception_handlers(app)

    # Root health check (unversioned, for load balancers / k8s probes)
    app.include_router(health.router, prefix="/api", tags=["Health"])

    # Versioned API: all business endpoints under /api/v1
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
