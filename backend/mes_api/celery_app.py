"""
Celery worker for periodic maintenance of external API bookkeeping.
"""
import logging
from datetime import timedelta

from celery import Celery
from celery.schedules import crontab

from .config import settings
from .database import SessionLocal
from .services.woo_state import now_utc
from .use_cases.api_keys import purge_api_key_usage

logger = logging.getLogger(__name__)

celery_app = Celery(
    "mes",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    beat_schedule={
        "purge-api-key-usage-nightly": {
            "task": "purge_api_key_usage",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)


@celery_app.task(name="purge_api_key_usage")
def purge_api_key_usage_task(retention_days: int | None = None):
    """
    Delete API key usage rows older than the retention window.
    """
    days = retention_days if retention_days is not None else settings.API_KEY_USAGE_RETENTION_DAYS
    cutoff = now_utc() - timedelta(days=days)
    db = SessionLocal()

    try:
        deleted = purge_api_key_usage(db=db, older_than=cutoff)
        logger.info("Purged %s api_key_usage rows older than %s", deleted, cutoff.isoformat())
        return {"deleted": deleted, "cutoff": cutoff.isoformat()}

    except Exception:
        db.rollback()
        logger.error("Error purging api_key_usage", exc_info=True)
        raise

    finally:
        db.close()
