# backend/therapport/tasks/maintenance.py
"""Periodic maintenance of the webhook dedup ledger."""

import logging

from ..core.config import settings
from ..database import get_db_session
from ..repositories.factory import RepositoryFactory
from .celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)


@celery_app.task(base=BaseTask, name="therapport.tasks.maintenance.purge_webhook_events")
def purge_webhook_events() -> int:
    """Drop processed webhook ids older than the dedup retention window."""
    with get_db_session() as db:
        purged = RepositoryFactory.create_webhook_event_repository(db).purge_older_than(
            retention_hours=settings.webhook_event_retention_hours
        )
    logger.info("Purged %s webhook events", purged)
    return purged
