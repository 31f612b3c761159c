from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, or_, select, tuple_, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.db.models.friend_requests import FriendRequest
from earlysleep.db.models.friendships import Friendship


class FriendsRepo:
    @staticmethod
    async def get_request_by_id(session: AsyncSession, request_id: str) -> FriendRequest | None:
        return await session.get(FriendRequest, request_id)

    @staticmethod
    async def get_request_by_id_for_update(
        session: AsyncSession,
        request_id: str,
    ) -> FriendRequest | None:
        stmt = (
            select(FriendRequest)
            .where(FriendRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def has_pending_request(session: AsyncSession, *, from_uid: str, to_uid: str) -> bool:
        stmt = (
            select(FriendRequest.id)
            .where(
                FriendRequest.from_uid == from_uid,
                FriendRequest.to_uid == to_uid,
                FriendRequest.status == "pending",
            )
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def try_create_pending_request(
        session: AsyncSession,
        *,
        request_id: str,
        from_uid: str,
        to_uid: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            postgresql_insert(FriendRequest)
            .values(
                id=request_id,
                from_uid=from_uid,
                to_uid=to_uid,
                status="pending",
                created_at=now_utc,
                updated_at=now_utc,
            )
            .on_conflict_do_nothing()
            .returning(FriendRequest.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def set_request_status(
        session: AsyncSession,
        *,
        request_id: str,
        status: str,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(FriendRequest)
            .where(FriendRequest.id == request_id)
            .values(status=status, updated_at=now_utc)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def list_incoming_pending(
        session: AsyncSession,
        *,
        uid: str,
        limit: int,
    ) -> list[FriendRequest]:
        stmt = (
            select(FriendRequest)
            .where(FriendRequest.to_uid == uid, FriendRequest.status == "pending")
            .order_by(FriendRequest.created_at.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_outgoing(
        session: AsyncSession,
        *,
        uid: str,
        statuses: tuple[str, ...],
        limit: int,
    ) -> list[FriendRequest]:
        stmt = (
            select(FriendRequest)
            .where(FriendRequest.from_uid == uid, FriendRequest.status.in_(statuses))
            .order_by(FriendRequest.created_at.desc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_accepted_without_edge(
        session: AsyncSession,
        *,
        limit: int,
    ) -> list[FriendRequest]:
        edge_exists = (
            select(Friendship.id)
            .where(
                or_(
                    (Friendship.a_uid == FriendRequest.from_uid) & (Friendship.b_uid == FriendRequest.to_uid),
                    (Friendship.a_uid == FriendRequest.to_uid) & (Friendship.b_uid == FriendRequest.from_uid),
                )
            )
            .exists()
        )
        stmt = (
            select(FriendRequest)
            .where(FriendRequest.status == "accepted", ~edge_exists)
            .order_by(FriendRequest.updated_at.asc())
            .limit(max(1, int(limit)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_edge(session: AsyncSession, edge_id: str) -> Friendship | None:
        return await session.get(Friendship, edge_id)

    @staticmethod
    async def try_create_edge(
        session: AsyncSession,
        *,
        edge_id: str,
        a_uid: str,
        b_uid: str,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            postgresql_insert(Friendship)
            .values(id=edge_id, a_uid=a_uid, b_uid=b_uid, created_at=now_utc)
            .on_conflict_do_nothing(index_elements=[Friendship.id])
            .returning(Friendship.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def delete_edge(session: AsyncSession, edge_id: str) -> int:
        stmt = delete(Friendship).where(Friendship.id == edge_id)
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def list_edges_for_uid(
        session: AsyncSession,
        *,
        uid: str,
        created_before: datetime | None,
        before_id: str | None = None,
        limit: int,
    ) -> list[Friendship]:
        stmt = (
            select(Friendship)
            .where(or_(Friendship.a_uid == uid, Friendship.b_uid == uid))
            .order_by(Friendship.created_at.desc(), Friendship.id.desc())
            .limit(max(1, int(limit)))
        )
        if created_before is not None and before_id is not None:
            stmt = stmt.where(tuple_(Friendship.created_at, Friendship.id) < tuple_(created_before, before_id))
        elif created_before is not None:
            stmt = stmt.where(Friendship.created_at < created_before)
        result = await session.execute(stmt)
        return list(result.scalars().all())
