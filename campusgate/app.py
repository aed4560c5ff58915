"""
CampusGate - FastAPI Application Entrypoint

This module initializes the FastAPI application with:
- Access-control middleware (rate limit, screening, authn/authz, headers)
- CORS
- Authentication and admin routes
- Database lifecycle management
- Background session sweeper

Run:
    uvicorn campusgate.app:app --no-server-header
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campusgate import __version__
from campusgate.admin.routes import cron_router, router as admin_router
from campusgate.audit.sink import SQLAuditSink
from campusgate.auth.database import get_engine, get_session_factory, init_db
from campusgate.auth.routes import router as auth_router
from campusgate.auth.sessions import SessionManager
from campusgate.auth.store import SQLSessionStore
from campusgate.config import settings
from campusgate.gateway.middleware import AccessControlMiddleware
from campusgate.gateway.ratelimit import RequestRateLimiter
from campusgate.gateway.rbac import AuthorizationTable
from campusgate.logging import get_logger


logger = get_logger(__name__)


def create_app(
    database_url: Optional[str] = None,
    run_sweeper: Optional[bool] = None,
    table: Optional[AuthorizationTable] = None,
    rate_limiter: Optional[RequestRateLimiter] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        database_url: Overrides settings.DATABASE_URL (tests use "sqlite://")
        run_sweeper: Start the background cleanup loop; defaults to
            settings.SESSION_CLEANUP_ENABLED
        table: Route authorization table; defaults to routes.yaml
        rate_limiter: Shared limiter; defaults to settings values
    """
    sweeper_enabled = settings.SESSION_CLEANUP_ENABLED if run_sweeper is None else run_sweeper

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
            - Create tables, session factory, session store and audit sink
            - Start the session sweeper
        Shutdown:
            - Stop the sweeper and dispose the engine
        """
        engine = get_engine(database_url or settings.DATABASE_URL)
        init_db(engine)
        factory = get_session_factory(engine)

        app.state.db_engine = engine
        app.state.db_session_factory = factory
        app.state.session_manager = SessionManager(
            store=SQLSessionStore(factory),
            audit=SQLAuditSink(factory),
        )

        sweeper_task = None
        if sweeper_enabled:
            sweeper_task = asyncio.create_task(
                app.state.session_manager.sweeper.run_forever(
                    settings.SESSION_CLEANUP_INTERVAL_SECONDS
                )
            )

        logger.info(
            "app_started",
            environment=settings.ENVIRONMENT,
            sweeper_enabled=sweeper_enabled,
        )

        yield

        if sweeper_task:
            sweeper_task.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper_task

        engine.dispose()
        logger.info("app_stopped")

    app = FastAPI(
        title="CampusGate",
        description="Session management and access control for the college portal",
        version=__version__,
        lifespan=lifespan,
    )

    # Access control runs inside CORS so preflight requests are answered first
    app.add_middleware(
        AccessControlMiddleware,
        table=table,
        rate_limiter=rate_limiter,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "PUT", "PATCH"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.include_router(auth_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")
    app.include_router(cron_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Liveness check."""
        return {"status": "healthy", "version": __version__}

    @app.get("/")
    async def root():
        return {
            "name": "CampusGate",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
