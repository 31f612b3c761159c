from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.db.models.slot_daily import SlotDaily


class SlotDailyRepo:
    @staticmethod
    async def overwrite(
        session: AsyncSession,
        *,
        slot_key: str,
        date: str,
        participants: int,
        hits: int,
        hit_rate: float,
        now_utc: datetime,
    ) -> None:
        values = {
            "id": f"{slot_key}#{date}",
            "slot_key": slot_key,
            "date": date,
            "participants": participants,
            "hits": hits,
            "hit_rate": hit_rate,
            "updated_at": now_utc,
        }
        stmt = insert(SlotDaily).values(**values)
        stmt = stmt.on_conflict_do_update(index_elements=[SlotDaily.id], set_=values)
        await session.execute(stmt)

    @staticmethod
    async def delete_for_date_except(session: AsyncSession, *, date: str, keep_slot_keys: Iterable[str]) -> int:
        stmt = delete(SlotDaily).where(SlotDaily.date == date)
        keep = tuple(keep_slot_keys)
        if keep:
            stmt = stmt.where(SlotDaily.slot_key.not_in(keep))
        result = await session.execute(stmt)
        return result.rowcount or 0
