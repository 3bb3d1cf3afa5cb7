import logging
from typing import Any

from arq import cron

from app.core import database
from app.core.config import settings
from app.services.batch_runner import BatchRunner
from app.tasks import redis_settings

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Subscription billing worker started")


async def run_subscription_charges_task(ctx: dict[str, Any]) -> dict[str, int]:
    """Background task: charge every due subscription once.

    Runs every BATCH_CRON_MINUTES minutes. Overlapping runs are safe: each
    subscription is charged under its own lease.
    """
    db = database.SessionLocal()
    try:
        result = BatchRunner(db).run_batch()
        for subscription_id, error in result.errors:
            logger.warning("Subscription %s charge failed: %s", subscription_id, error)
        return {
            "processed": result.processed,
            "succeeded": result.succeeded,
            "failed": result.failed,
            "skipped": result.skipped,
        }
    finally:
        db.close()


def _cron_minutes(every: int) -> set[int]:
    every = max(1, min(every, 60))
    return set(range(0, 60, every))


class WorkerSettings:
    functions = [run_subscription_charges_task]
    cron_jobs = [
        cron(
            run_subscription_charges_task,
            minute=_cron_minutes(settings.BATCH_CRON_MINUTES),
            unique=True,
        ),
    ]
    on_startup = startup
    redis_settings = redis_settings
