"""
Work Item Engine - Composition Root
===================================

Incident lifecycle and SLA tracking for tickets and alerts.

Wires configuration, logging, the database handle, the SLA policy and the
services together. Nothing here is a module-level singleton: every call to
``create_application`` builds an independent object graph, which is how
tests get one isolated engine per database file.

Clean Architecture Layers:
- Application: Services, DTOs, audit and stats
- Domain: Entities, lifecycle tables, predicates and value objects
- Infrastructure: Database, repositories, SLA policy file
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from src.config import Settings, get_settings
from src.core import Clock, IdFactory, new_id, utc_now
from src.infrastructure.database import Database
from src.shared.infrastructure.logging import get_logger, setup_logging
from src.workitems.application import AlertService, AuditRecorder, TicketService
from src.workitems.infrastructure import (
    SLAPolicyManager,
    SQLAlchemyAlertRepository,
    SQLAlchemyHistoryRepository,
    SQLAlchemyTicketRepository,
)

logger = get_logger(__name__)


@dataclass
class Application:
    """The wired object graph."""
    settings: Settings
    database: Database
    policy: SLAPolicyManager
    audit: AuditRecorder
    tickets: TicketService
    alerts: AlertService


async def create_application(
    settings: Optional[Settings] = None,
    *,
    clock: Clock = utc_now,
    id_factory: IdFactory = new_id,
    create_schema: bool = False,
    configure_logging: bool = True,
) -> Application:
    """
    Build the engine.

    STARTUP:
    1. Setup structured logging
    2. Open the database handle (and create tables if asked)
    3. Load the SLA policy and start watching it if enabled
    4. Wire audit and services

    Args:
        settings: Configuration; defaults to ``get_settings()``
        clock: Source of "now" for every component
        id_factory: Source of new ids for items and history entries
        create_schema: Create tables on startup (development and tests)
        configure_logging: Install the JSON root handler
    """
    settings = settings or get_settings()

    if configure_logging:
        setup_logging(settings.log_level, settings.environment)
    logger.info(
        "Starting work item engine",
        extra={"version": settings.app_version, "environment": settings.environment}
    )

    database = Database.from_settings(settings)
    if create_schema:
        logger.info("Creating database tables")
        await database.create_tables()

    policy = SLAPolicyManager()
    policy.load(settings.sla_policy_path)
    if settings.sla_policy_watch:
        policy.start_watching()

    audit = AuditRecorder(
        database, SQLAlchemyHistoryRepository, clock=clock, id_factory=id_factory
    )
    common = {
        "clock": clock,
        "id_factory": id_factory,
        "operation_timeout": settings.operation_timeout_seconds,
        "due_soon_window": timedelta(hours=settings.due_soon_hours),
        "default_page_size": settings.default_page_size,
        "max_page_size": settings.max_page_size,
    }
    tickets = TicketService(
        database,
        SQLAlchemyTicketRepository,
        audit,
        policy_provider=policy,
        auto_assign_sla=settings.sla_auto_assign,
        **common,
    )
    alerts = AlertService(database, SQLAlchemyAlertRepository, audit, **common)

    return Application(
        settings=settings,
        database=database,
        policy=policy,
        audit=audit,
        tickets=tickets,
        alerts=alerts,
    )


async def shutdown(app: Application) -> None:
    """
    SHUTDOWN:
    1. Stop the SLA policy watcher
    2. Close database connections
    """
    logger.info("Shutting down work item engine")
    app.policy.stop_watching()
    await app.database.close()
    logger.info("Work item engine shutdown complete")
