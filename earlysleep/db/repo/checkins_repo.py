from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.db.models.checkins import Checkin


class CheckinsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, checkin_id: str) -> Checkin | None:
        stmt = select(Checkin).where(Checkin.id == checkin_id).execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def try_create(
        session: AsyncSession,
        *,
        checkin_id: str,
        uid: str,
        date: str,
        status: str,
        tz_offset_minutes: int,
        goodnight_message_id: str | None,
        created_at: datetime,
    ) -> bool:
        stmt = (
            postgresql_insert(Checkin)
            .values(
                id=checkin_id,
                uid=uid,
                date=date,
                status=status,
                tz_offset_minutes=tz_offset_minutes,
                goodnight_message_id=goodnight_message_id,
                created_at=created_at,
            )
            .on_conflict_do_nothing(index_elements=[Checkin.id])
            .returning(Checkin.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def attach_goodnight_message_if_missing(
        session: AsyncSession,
        *,
        checkin_id: str,
        goodnight_message_id: str,
    ) -> bool:
        stmt = (
            update(Checkin)
            .where(Checkin.id == checkin_id, Checkin.goodnight_message_id.is_(None))
            .values(goodnight_message_id=goodnight_message_id)
            .returning(Checkin.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_for_uid_between(
        session: AsyncSession,
        *,
        uid: str,
        from_date: str,
        to_date: str,
        before_id: str | None,
        limit: int,
    ) -> list[Checkin]:
        stmt = (
            select(Checkin)
            .where(
                Checkin.id >= f"{uid}#{from_date}",
                Checkin.id <= f"{uid}#{to_date}",
            )
            .order_by(Checkin.id.desc())
            .limit(max(1, int(limit)))
        )
        if before_id is not None:
            stmt = stmt.where(Checkin.id < before_id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_statuses_for_uid_up_to(
        session: AsyncSession,
        *,
        uid: str,
        to_date: str,
        limit: int,
    ) -> list[tuple[str, str]]:
        stmt = (
            select(Checkin.date, Checkin.status)
            .where(Checkin.uid == uid, Checkin.date <= to_date)
            .order_by(Checkin.date.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return [(str(date), str(status)) for date, status in result.all()]

    @staticmethod
    async def list_page_for_date(
        session: AsyncSession,
        *,
        date: str,
        after_id: str | None,
        limit: int,
    ) -> list[tuple[str, str, str]]:
        stmt = (
            select(Checkin.id, Checkin.uid, Checkin.status)
            .where(Checkin.date == date)
            .order_by(Checkin.id.asc())
            .limit(max(1, int(limit)))
        )
        if after_id is not None:
            stmt = stmt.where(Checkin.id > after_id)
        result = await session.execute(stmt)
        return [(str(row_id), str(uid), str(status)) for row_id, uid, status in result.all()]
