import logging

from core.celery import celery_app
from core.db import db_session
from services.cleanup import run_cleanup

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.maintenance_tasks.cleanup_task")
def cleanup_task():
    """Hourly housekeeping: stale carts, expired lockouts, unpaid orders."""
    with db_session() as db:
        results = run_cleanup(db)
    logger.info("Scheduled cleanup finished: %s", results)
    return results
