"""
Supportwatch - Main Application
===============================

Notification, SLA monitoring and escalation engine for customer support.

Modules:
- Notifications: rule-driven notifications over email, Slack, Teams,
  webhooks and in-app realtime
- SLA Monitoring: periodic breach detection and the escalation state machine
- Alerts: operational dashboard rollups

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, channel clients, schedulers
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from supportwatch.config import NotificationChannel, Settings, settings
from supportwatch.core import ApplicationException, ConfigurationException

# Infrastructure
from supportwatch.infrastructure.database import close_database, create_tables, init_database
from supportwatch.infrastructure.database.unit_of_work import sqlalchemy_unit_of_work
from supportwatch.notifications.infrastructure import (
    ConnectionManager,
    EmailChannel,
    NotificationChannelClient,
    RealtimeChannel,
    SlackChannel,
    TeamsChannel,
    WebhookChannel,
    YAMLUserDirectory,
)
from supportwatch.sla.domain import SLAConfig
from supportwatch.sla.infrastructure import SLAConfigManager, SLAScheduler

# Engine and module routers
from supportwatch.engine import SupportEngine
from supportwatch.alerts.interfaces import alerts_router
from supportwatch.notifications.interfaces import notifications_router
from supportwatch.sla.interfaces import sla_router

# Middleware and logging
from supportwatch.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from supportwatch.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_channels(
    config: Settings,
    connections: ConnectionManager
) -> Dict[str, NotificationChannelClient]:
    """Channel clients configured from settings."""
    http_options = {"timeout_seconds": config.dispatch_timeout_seconds}
    return {
        NotificationChannel.EMAIL: EmailChannel(
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            from_email=config.smtp_from_email,
            from_name=config.smtp_from_name,
            use_tls=config.smtp_use_tls,
        ),
        NotificationChannel.SLACK: SlackChannel(
            webhook_url=config.slack_webhook_url,
            default_channel=config.slack_channel,
            **http_options
        ),
        NotificationChannel.TEAMS: TeamsChannel(webhook_url=config.teams_webhook_url, **http_options),
        NotificationChannel.WEBHOOK: WebhookChannel(**http_options),
        NotificationChannel.REALTIME: RealtimeChannel(connections),
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA configuration and start the file watcher
    4. Load the user directory
    5. Build and start the engine (event workers)
    6. Start the SLA scan scheduler

    SHUTDOWN runs the same steps in reverse.
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Supportwatch", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    logger.info("Loading SLA configuration")
    config_manager = SLAConfigManager()
    try:
        config_manager.load(settings.sla_config_path)
        config_manager.start_watching()
    except ConfigurationException as e:
        logger.error("Invalid SLA configuration, using defaults", extra={"error": e.message})
        config_manager = SLAConfigManager(config=SLAConfig())

    try:
        directory = YAMLUserDirectory.from_file(settings.directory_config_path)
    except ConfigurationException as e:
        logger.error("Invalid user directory, using empty directory", extra={"error": e.message})
        directory = YAMLUserDirectory()

    connections = ConnectionManager()
    engine = SupportEngine(
        uow_factory=sqlalchemy_unit_of_work,
        config_provider=config_manager,
        directory=directory,
        channels=build_channels(settings, connections),
        connections=connections,
        event_workers=settings.event_workers,
        dispatch_timeout_seconds=settings.dispatch_timeout_seconds,
        base_url=settings.frontend_url,
    )
    await engine.start()

    sla_scheduler = None
    if settings.sla_evaluation_interval > 0:
        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_evaluation_interval)
        await sla_scheduler.start(engine.run_scan)

    app.state.engine = engine
    app.state.sla_config_manager = config_manager
    app.state.sla_scheduler = sla_scheduler

    logger.info("Supportwatch started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Supportwatch")

    if sla_scheduler:
        await sla_scheduler.stop()

    await engine.stop()
    config_manager.stop_watching()
    await close_database()

    logger.info("Supportwatch shutdown complete")


def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Without the lifespan the caller must set `app.state.engine`.
    """
    app = FastAPI(
        title="Supportwatch API",
        description="""
    ## Notification, SLA Monitoring & Escalation Engine

    - `/notifications` - rules, events, manual execution, delayed
      notifications, dispatch logs, user settings, realtime WebSocket
    - `/sla` - ticket snapshots, violations, scans, escalations
    - `/alerts` - dashboard overview, alerts, trends and rollups
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan if use_lifespan else None
    )

    # === Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Module Routers ===
    app.include_router(notifications_router)
    app.include_router(sla_router)
    app.include_router(alerts_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        engine = getattr(request.app.state, "engine", None)
        scheduler = getattr(request.app.state, "sla_scheduler", None)
        config_manager = getattr(request.app.state, "sla_config_manager", None)

        checks = {
            "engine": "running" if engine and engine.bus.is_running else "stopped",
            "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "sla_config": "watching" if config_manager and config_manager.is_watching else "static",
            "pending_delayed": engine.scheduler.pending_count if engine else 0,
            "realtime_connections": engine.connections.get_total_connections() if engine else 0,
        }
        return {
            "status": "healthy" if engine else "starting",
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
            "modules": ["notifications", "sla", "alerts"],
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "supportwatch.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
