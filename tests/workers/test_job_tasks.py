from __future__ import annotations

from datetime import datetime, timezone

from earlysleep.workers.celery_app import celery_app
from earlysleep.workers.tasks import friendship_sweep, goodnight_reactions, slot_rollup


def test_run_goodnight_reactions_consume_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, batch_size: int | None = None) -> dict[str, int]:
        return {"consumed": 4, "grouped": 2, "applied": 2, "failed": 0, "batch": batch_size}

    monkeypatch.setattr(goodnight_reactions, "run_goodnight_reactions_consume_async", fake_async)

    result = goodnight_reactions.run_goodnight_reactions_consume(batch_size=10)
    assert result == {"consumed": 4, "grouped": 2, "applied": 2, "failed": 0, "batch": 10}


def test_run_slot_rollup_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, date_key: str | None = None) -> dict[str, object]:
        return {"date": date_key, "slots": 3}

    monkeypatch.setattr(slot_rollup, "run_slot_rollup_async", fake_async)

    assert slot_rollup.run_slot_rollup("20240101") == {"date": "20240101", "slots": 3}


def test_run_friendship_sweep_task_wrapper(monkeypatch) -> None:
    async def fake_async(*, limit: int = 100) -> dict[str, int]:
        return {"scanned": limit, "repaired": 1}

    monkeypatch.setattr(friendship_sweep, "run_friendship_sweep_async", fake_async)

    assert friendship_sweep.run_friendship_sweep(limit=5) == {"scanned": 5, "repaired": 1}


def test_default_rollup_date_is_yesterday_in_default_offset() -> None:
    # 17:00 UTC is already 01:00 next day at +08:00.
    assert slot_rollup.default_rollup_date(datetime(2024, 1, 1, 17, 0, tzinfo=timezone.utc)) == "20240101"
    assert slot_rollup.default_rollup_date(datetime(2024, 1, 1, 15, 0, tzinfo=timezone.utc)) == "20231231"


def test_beat_schedule_registers_job_entries() -> None:
    schedule = celery_app.conf.beat_schedule

    assert schedule["goodnight-reactions-consume-every-minute"]["schedule"] == 60.0
    assert schedule["slot-rollup-hourly"]["task"] == "earlysleep.workers.tasks.slot_rollup.run_slot_rollup"
    assert schedule["friendship-sweep-every-15-minutes"]["options"] == {"queue": "q_low"}
