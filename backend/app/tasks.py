from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from app.core.config import settings

redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)

# At most one manually triggered batch can be queued at a time.
CHARGE_BATCH_JOB_ID = "subscription-charge-batch"


async def get_redis_pool() -> ArqRedis:
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job | None:
    """Enqueue ``task_name`` on the billing worker.

    Returns None when arq refuses the job because one with the same
    ``_job_id`` is already queued or running.
    """
    pool = await get_redis_pool()
    try:
        return await pool.enqueue_job(task_name, *args, **kwargs)
    finally:
        await pool.close()


async def enqueue_subscription_charges() -> Job | None:
    """Queue one subscription charge batch run."""
    return await enqueue_task("run_subscription_charges_task", _job_id=CHARGE_BATCH_JOB_ID)
