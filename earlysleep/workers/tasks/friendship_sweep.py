from __future__ import annotations

import structlog

from earlysleep.db.session import SessionLocal
from earlysleep.friends.service import FriendService
from earlysleep.workers.asyncio_runner import run_async_job
from earlysleep.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

SWEEP_BATCH_LIMIT = 100


async def run_friendship_sweep_async(*, limit: int = SWEEP_BATCH_LIMIT) -> dict[str, int]:
    async with SessionLocal.begin() as session:
        result = await FriendService.sweep_missing_edges(session, limit=limit)
    logger.info("friendship_sweep_finished", **result)
    return result


@celery_app.task(name="earlysleep.workers.tasks.friendship_sweep.run_friendship_sweep")
def run_friendship_sweep(limit: int = SWEEP_BATCH_LIMIT) -> dict[str, int]:
    return run_async_job(run_friendship_sweep_async(limit=limit))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "friendship-sweep-every-15-minutes": {
            "task": "earlysleep.workers.tasks.friendship_sweep.run_friendship_sweep",
            "schedule": 900.0,
            "options": {"queue": "q_low"},
        },
    }
)
