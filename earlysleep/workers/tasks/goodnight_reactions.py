from __future__ import annotations

import structlog

from earlysleep.core.config import get_settings
from earlysleep.db.session import SessionLocal
from earlysleep.goodnight.reactions import consume_reactions
from earlysleep.workers.asyncio_runner import run_async_job
from earlysleep.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def run_goodnight_reactions_consume_async(*, batch_size: int | None = None) -> dict[str, int]:
    resolved_batch_size = batch_size or get_settings().reactions_batch_size
    async with SessionLocal.begin() as session:
        result = await consume_reactions(session, batch_size=resolved_batch_size)
    if result["failed"]:
        logger.warning("goodnight_reactions_consume_partial_failure", **result)
    return result


@celery_app.task(name="earlysleep.workers.tasks.goodnight_reactions.run_goodnight_reactions_consume")
def run_goodnight_reactions_consume(batch_size: int | None = None) -> dict[str, int]:
    return run_async_job(run_goodnight_reactions_consume_async(batch_size=batch_size))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "goodnight-reactions-consume-every-minute": {
            "task": "earlysleep.workers.tasks.goodnight_reactions.run_goodnight_reactions_consume",
            "schedule": 60.0,
            "options": {"queue": "q_normal"},
        },
    }
)
