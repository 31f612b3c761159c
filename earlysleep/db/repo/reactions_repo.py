from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.db.models.goodnight_reactions import GoodnightReactionEvent, GoodnightVote


class ReactionsRepo:
    @staticmethod
    async def create_event(
        session: AsyncSession,
        *,
        message_id: str,
        voter_uid: str,
        delta_likes: int,
        delta_dislikes: int,
        delta_score: int,
        now_utc: datetime,
    ) -> GoodnightReactionEvent:
        event = GoodnightReactionEvent(
            message_id=message_id,
            voter_uid=voter_uid,
            delta_likes=delta_likes,
            delta_dislikes=delta_dislikes,
            delta_score=delta_score,
            status="queued",
            created_at=now_utc,
        )
        session.add(event)
        await session.flush()
        return event

    @staticmethod
    async def try_create_vote(
        session: AsyncSession,
        *,
        vote_id: str,
        message_id: str,
        voter_uid: str,
        value: int,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            postgresql_insert(GoodnightVote)
            .values(
                id=vote_id,
                message_id=message_id,
                voter_uid=voter_uid,
                value=value,
                created_at=now_utc,
                updated_at=now_utc,
            )
            .on_conflict_do_nothing(index_elements=[GoodnightVote.id])
            .returning(GoodnightVote.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def get_vote_for_update(session: AsyncSession, vote_id: str) -> GoodnightVote | None:
        stmt = (
            select(GoodnightVote)
            .where(GoodnightVote.id == vote_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def claim_queued_batch(session: AsyncSession, *, limit: int) -> list[GoodnightReactionEvent]:
        stmt = (
            select(GoodnightReactionEvent)
            .where(GoodnightReactionEvent.status == "queued")
            .order_by(GoodnightReactionEvent.created_at.asc(), GoodnightReactionEvent.id.asc())
            .limit(max(1, int(limit)))
            .with_for_update(skip_locked=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def mark_events(
        session: AsyncSession,
        *,
        event_ids: Sequence[int],
        status: str,
        now_utc: datetime,
    ) -> int:
        if not event_ids:
            return 0
        stmt = (
            update(GoodnightReactionEvent)
            .where(
                GoodnightReactionEvent.id.in_(tuple(event_ids)),
                GoodnightReactionEvent.status == "queued",
            )
            .values(status=status, processed_at=now_utc)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0
