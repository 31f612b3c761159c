from __future__ import annotations

from datetime import datetime, timezone

from earlysleep.core.config import get_settings
from earlysleep.core.dates import today_from_offset, yesterday
from earlysleep.db.session import SessionLocal
from earlysleep.rollup.service import rollup
from earlysleep.workers.asyncio_runner import run_async_job
from earlysleep.workers.celery_app import celery_app


def default_rollup_date(now_utc: datetime | None = None) -> str:
    current = now_utc or datetime.now(timezone.utc)
    return yesterday(today_from_offset(get_settings().default_tz_offset_minutes, current))


async def run_slot_rollup_async(*, date_key: str | None = None) -> dict[str, object]:
    resolved_date = date_key or default_rollup_date()
    async with SessionLocal.begin() as session:
        return await rollup(session, date_key=resolved_date)


@celery_app.task(name="earlysleep.workers.tasks.slot_rollup.run_slot_rollup")
def run_slot_rollup(date_key: str | None = None) -> dict[str, object]:
    return run_async_job(run_slot_rollup_async(date_key=date_key))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "slot-rollup-hourly": {
            "task": "earlysleep.workers.tasks.slot_rollup.run_slot_rollup",
            "schedule": 3600.0,
            "options": {"queue": "q_low"},
        },
    }
)
