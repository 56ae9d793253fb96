"""
Grievance Service - Main Application
====================================

Issue lifecycle and access-control engine of the grievance platform.

Modules:
- Access: permission model, comment visibility, principal resolution
- Issues: lifecycle state machine, assignment, escalation, audit trail
- SLA: breach clocks, policy hot-reload, background breach monitor

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects and rules
- Infrastructure: Database, in-memory store, webhooks, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from grievance.bootstrap import (
    ServiceContainer,
    build_container,
    in_memory_repositories,
    sqlalchemy_repositories,
)
from grievance.config import get_settings
from grievance.core import ApplicationException
from grievance.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    get_session_maker,
    init_database,
)
from grievance.issues.interfaces import agents_router, issues_router
from grievance.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    application_exception_handler,
    global_exception_handler,
    validation_exception_handler,
)
from grievance.shared.infrastructure.logging import get_logger, setup_logging
from grievance.sla.infrastructure import SLAPolicyManager, SLAScheduler

logger = get_logger(__name__)


async def _build_runtime_container(app: FastAPI) -> ServiceContainer:
    """Wire the configured store and the hot-reloaded SLA policy."""
    settings = app.state.settings

    logger.info("Loading SLA policy")
    policy_manager = SLAPolicyManager()
    policy_manager.load(settings.sla_policy_path)
    policy_manager.start_watching()
    app.state.policy_manager = policy_manager

    if settings.use_in_memory_store:
        logger.warning("Using in-memory store; data is lost on restart")
        return build_container(settings, in_memory_repositories(), policy_manager)

    logger.info("Initializing database")
    init_database(settings.database_url)
    try:
        await create_tables()
    except Exception as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    return build_container(
        settings,
        sqlalchemy_repositories(get_session_maker()),
        policy_manager,
        uses_database=True,
    )


def create_app(
    container: Optional[ServiceContainer] = None,
    start_background: bool = True,
    configure_logging: bool = True
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        container: Pre-built services (tests); when omitted the lifespan
            wires them from settings
        start_background: Run the SLA monitor on its interval
        configure_logging: Install the JSON log handler on startup
    """
    settings = container.settings if container is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan manager.

        STARTUP:
        1. Setup structured logging
        2. Load SLA policy and watch it for changes
        3. Initialize storage and wire services
        4. Rebuild agent workloads from assigned issues
        5. Start the SLA monitor

        SHUTDOWN:
        1. Stop the SLA monitor
        2. Stop the policy watcher
        3. Flush notifications
        4. Close database connections
        """
        # === STARTUP ===
        if configure_logging:
            setup_logging(settings.log_level, settings.environment)
        logger.info("Starting Grievance Service", extra={
            "version": settings.app_version,
            "environment": settings.environment
        })

        if getattr(app.state, "container", None) is None:
            app.state.container = await _build_runtime_container(app)
        services: ServiceContainer = app.state.container

        try:
            await services.agent_directory.recompute()
        except Exception as e:
            logger.warning("Agent workload recompute failed", extra={"error": str(e)})

        scheduler = None
        if start_background and settings.sla_monitor_interval > 0:
            scheduler = SLAScheduler(interval_seconds=settings.sla_monitor_interval)
            await scheduler.start(services.sla_monitor.sweep)
        app.state.sla_scheduler = scheduler

        logger.info("Grievance Service started successfully")

        yield  # Application runs here

        # === SHUTDOWN ===
        logger.info("Shutting down Grievance Service")

        if scheduler:
            await scheduler.stop()

        policy_manager = getattr(app.state, "policy_manager", None)
        if policy_manager:
            policy_manager.stop_watching()

        await services.notifier.close()

        if services.uses_database:
            await close_database()

        logger.info("Grievance Service shutdown complete")

    app = FastAPI(
        title="Grievance Service API",
        description="""
        ## Issue lifecycle and access control

        - `POST /issues` - File an issue
        - `PATCH /issues/{id}/status` - Move an issue along its lifecycle
        - `POST /issues/{id}/assign`, `/auto-assign`, `/unassign` - Assignment
        - `POST /issues/{id}/escalate` - Raise priority with re-routing
        - `POST /issues/{id}/comments`, `/internal-comments` - Two comment channels
        - `GET /issues/{id}/sla` - SLA clocks
        - `GET /issues/{id}/audit` - Audit trail
        - `GET /agents/workload` - Agent workload

        All endpoints take a bearer token.
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.container = container
    app.state.policy_manager = None
    app.state.sla_scheduler = None

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added last runs first: correlation ID is bound before anything logs.
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(CorrelationIDMiddleware)

    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(issues_router)
    app.include_router(agents_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports database connectivity, SLA policy state and the monitor.
        """
        services: Optional[ServiceContainer] = request.app.state.container
        scheduler = request.app.state.sla_scheduler
        policy_manager = request.app.state.policy_manager

        checks = {
            "database": "not_configured",
            "sla_policy": "loaded" if services is not None else "not_loaded",
            "sla_policy_watch": "watching" if policy_manager and policy_manager.is_watching else "static",
            "sla_monitor": "running" if scheduler and scheduler.is_running else "stopped",
        }
        healthy = services is not None

        if services is not None and services.uses_database:
            try:
                async with get_session_context() as session:
                    await session.execute(text("SELECT 1"))
                checks["database"] = "connected"
            except Exception as e:
                checks["database"] = f"error: {e}"
                healthy = False
        elif services is not None:
            checks["database"] = "in_memory"

        if services is not None and services.sla_monitor.last_run_at is not None:
            checks["sla_monitor_last_run"] = services.sla_monitor.last_run_at.isoformat()

        return {
            "status": "healthy" if healthy else "degraded",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "grievance.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
