"""Startup validation and bootstrap helpers."""

from __future__ import annotations

import logging

from leadflow.core.config import get_config
from leadflow.core.exceptions import ConfigurationError
from leadflow.core.logging_config import configure_logging
from leadflow.database import db as db_module
from leadflow.models import Base
from leadflow.services.lead_service import LeadService

logger = logging.getLogger(__name__)


def init_db() -> int:
    """Create missing tables and seed the stage catalog. Returns seeded row count."""
    Base.metadata.create_all(bind=db_module.get_engine())
    with LeadService() as service:
        return service.seed_stage_catalog()


def validate_startup_config() -> None:
    """Fail-fast config and connectivity checks."""
    config = get_config()
    if not db_module.verify_database_connection():
        raise ConfigurationError("Database connectivity check failed.")

    if config.is_production and db_module.DATABASE_URL.startswith("sqlite"):
        logger.warning(
            "startup.production.sqlite_detected",
            extra={"event": "startup.production.sqlite_detected"},
        )

    logger.info(
        "startup.config.validated",
        extra={
            "event": "startup.config.validated",
            "env": config.ENV,
            "database_url_scheme": db_module.DATABASE_URL.split("://", 1)[0],
            "lead_api_url": config.LEAD_API_URL,
            "celery_eager": config.CELERY_TASK_ALWAYS_EAGER,
        },
    )


def bootstrap() -> int:
    """Initialize logging, validate runtime configuration and prepare the schema.

    Returns the number of stage rows seeded.
    """
    configure_logging()
    validate_startup_config()
    seeded = init_db()
    logger.info("startup.catalog.seeded", extra={"event": "startup.catalog.seeded", "seeded": seeded})
    return seeded
