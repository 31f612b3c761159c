from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.db.models.goodnight_messages import GoodnightMessage


def _filtered_messages(
    *,
    exclude_uid: str | None,
    slot_key: str | None,
    min_score: int | None,
) -> Select[tuple[GoodnightMessage]]:
    stmt = select(GoodnightMessage).where(GoodnightMessage.status == "approved")
    if exclude_uid:
        stmt = stmt.where(GoodnightMessage.uid != exclude_uid)
    if slot_key:
        stmt = stmt.where(GoodnightMessage.slot_key == slot_key)
    if min_score is not None:
        stmt = stmt.where(GoodnightMessage.score >= min_score)
    return stmt


class GoodnightRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, message_id: str) -> GoodnightMessage | None:
        return await session.get(GoodnightMessage, message_id)

    @staticmethod
    async def exists(session: AsyncSession, message_id: str) -> bool:
        stmt = select(GoodnightMessage.id).where(GoodnightMessage.id == message_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def get_id_for_user_date(session: AsyncSession, *, user_id: str, date: str) -> str | None:
        stmt = (
            select(GoodnightMessage.id)
            .where(GoodnightMessage.user_id == user_id, GoodnightMessage.date == date)
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def try_create(
        session: AsyncSession,
        *,
        message_id: str,
        user_id: str,
        uid: str,
        date: str,
        text: str,
        slot_key: str,
        rand: float,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            postgresql_insert(GoodnightMessage)
            .values(
                id=message_id,
                user_id=user_id,
                uid=uid,
                date=date,
                text=text,
                slot_key=slot_key,
                rand=rand,
                likes=0,
                dislikes=0,
                score=0,
                status="approved",
                created_at=now_utc,
            )
            .on_conflict_do_nothing(index_elements=[GoodnightMessage.id])
            .returning(GoodnightMessage.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def first_at_or_after_pivot(
        session: AsyncSession,
        *,
        pivot: float,
        exclude_uid: str | None,
        slot_key: str | None,
        min_score: int | None,
    ) -> GoodnightMessage | None:
        stmt = (
            _filtered_messages(exclude_uid=exclude_uid, slot_key=slot_key, min_score=min_score)
            .where(GoodnightMessage.rand >= pivot)
            .order_by(GoodnightMessage.rand.asc(), GoodnightMessage.id.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def first_before_pivot(
        session: AsyncSession,
        *,
        pivot: float,
        exclude_uid: str | None,
        slot_key: str | None,
        min_score: int | None,
    ) -> GoodnightMessage | None:
        stmt = (
            _filtered_messages(exclude_uid=exclude_uid, slot_key=slot_key, min_score=min_score)
            .where(GoodnightMessage.rand < pivot)
            .order_by(GoodnightMessage.rand.asc(), GoodnightMessage.id.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def increment_counters(
        session: AsyncSession,
        *,
        message_id: str,
        delta_likes: int,
        delta_dislikes: int,
        delta_score: int,
    ) -> int:
        stmt = (
            update(GoodnightMessage)
            .where(GoodnightMessage.id == message_id)
            .values(
                likes=GoodnightMessage.likes + delta_likes,
                dislikes=GoodnightMessage.dislikes + delta_dislikes,
                score=GoodnightMessage.score + delta_score,
            )
            .returning(GoodnightMessage.id)
        )
        result = await session.execute(stmt)
        return 1 if result.scalar_one_or_none() is not None else 0
