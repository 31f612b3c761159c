from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.db.models.users import User


class UsersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, user_id: str) -> User | None:
        return await session.get(User, user_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, user_id: str) -> User | None:
        stmt = (
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_uid(session: AsyncSession, uid: str) -> User | None:
        stmt = select(User).where(User.uid == uid)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def uid_exists(session: AsyncSession, uid: str) -> bool:
        stmt = select(User.id).where(User.uid == uid).limit(1)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_by_uids(session: AsyncSession, uids: Sequence[str]) -> list[User]:
        unique_uids = tuple(dict.fromkeys(uids))
        if not unique_uids:
            return []
        stmt = select(User).where(User.uid.in_(unique_uids))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def map_slot_keys_by_uids(session: AsyncSession, uids: Sequence[str]) -> dict[str, str]:
        unique_uids = tuple(dict.fromkeys(uids))
        if not unique_uids:
            return {}
        stmt = select(User.uid, User.slot_key).where(User.uid.in_(unique_uids))
        result = await session.execute(stmt)
        return {str(uid): str(slot_key) for uid, slot_key in result.all()}

    @staticmethod
    async def try_create(
        session: AsyncSession,
        *,
        user_id: str,
        uid: str,
        nickname: str,
        tz_offset_minutes: int,
        target_hm: str,
        slot_key: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            postgresql_insert(User)
            .values(
                id=user_id,
                uid=uid,
                nickname=nickname,
                tz_offset_minutes=tz_offset_minutes,
                target_hm=target_hm,
                slot_key=slot_key,
                today_status="none",
                streak=0,
                total_days=0,
                last_checkin_date="",
                created_at=now_utc,
                updated_at=now_utc,
            )
            .on_conflict_do_nothing()
            .returning(User.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def apply_checkin_summary(
        session: AsyncSession,
        *,
        user_id: str,
        today_status: str,
        streak: int,
        total_days: int,
        last_checkin_date: str,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                today_status=today_status,
                streak=streak,
                total_days=total_days,
                last_checkin_date=last_checkin_date,
                updated_at=now_utc,
            )
        )
        result = await session.execute(stmt)
        return result.rowcount or 0
