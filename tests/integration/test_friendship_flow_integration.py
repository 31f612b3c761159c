from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from earlysleep.db.models.friendships import Friendship
from earlysleep.db.session import SessionLocal
from earlysleep.friends.service import FriendService, build_edge_id
from earlysleep.identity.service import IdentityService


async def _create_user(openid: str, seed: int) -> str:
    async with SessionLocal.begin() as session:
        user = await IdentityService.ensure_user(session, openid=openid, rng=random.Random(seed))
        return user.uid


async def _edge_count() -> int:
    async with SessionLocal.begin() as session:
        return int(await session.scalar(select(func.count()).select_from(Friendship)))


@pytest.mark.asyncio
async def test_parallel_accepts_create_a_single_edge() -> None:
    sender_uid = await _create_user("openid-sender", 21)
    receiver_uid = await _create_user("openid-receiver", 22)
    async with SessionLocal.begin() as session:
        request_id = await FriendService.send_request(session, from_uid=sender_uid, to_uid=receiver_uid)

    barrier = asyncio.Event()

    async def _accept():
        await barrier.wait()
        async with SessionLocal.begin() as session:
            return await FriendService.resolve_request(
                session,
                request_id=request_id,
                decider_uid=receiver_uid,
                decision="accepted",
            )

    tasks = [asyncio.create_task(_accept()) for _ in range(3)]
    barrier.set()
    results = await asyncio.gather(*tasks)

    assert {result.status for result in results} == {"accepted"}
    assert sum(1 for result in results if result.edge_created) == 1
    assert await _edge_count() == 1


@pytest.mark.asyncio
async def test_remove_then_finish_repairs_edge_and_page_lists_friend() -> None:
    sender_uid = await _create_user("openid-a", 23)
    receiver_uid = await _create_user("openid-b", 24)
    async with SessionLocal.begin() as session:
        request_id = await FriendService.send_request(session, from_uid=sender_uid, to_uid=receiver_uid)
    async with SessionLocal.begin() as session:
        await FriendService.resolve_request(
            session,
            request_id=request_id,
            decider_uid=receiver_uid,
            decision="accepted",
        )
    async with SessionLocal.begin() as session:
        assert await FriendService.remove_friend(session, uid=sender_uid, target_uid=receiver_uid) is True
    async with SessionLocal.begin() as session:
        assert await FriendService.sweep_missing_edges(session, limit=10) == {"scanned": 1, "repaired": 1}
    async with SessionLocal.begin() as session:
        assert await FriendService.finish_request(session, request_id=request_id, sender_uid=sender_uid) is False
        page = await FriendService.list_page(session, uid=sender_uid)

    assert await _edge_count() == 1
    assert [friend["uid"] for friend in page.friends] == [receiver_uid]
    assert page.outgoing[0]["requestId"] == request_id
    assert page.outgoing[0]["status"] == "accepted"
    async with SessionLocal.begin() as session:
        edge = await session.get(Friendship, build_edge_id(sender_uid, receiver_uid))
    assert edge is not None


@pytest.mark.asyncio
async def test_friend_page_cursor_keeps_edges_sharing_a_timestamp() -> None:
    created_at = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    friends = [f"FR{index:06d}" for index in range(5)]
    async with SessionLocal.begin() as session:
        for friend_uid in friends:
            a_uid, b_uid = sorted(("ME222222", friend_uid))
            session.add(Friendship(id=build_edge_id(a_uid, b_uid), a_uid=a_uid, b_uid=b_uid, created_at=created_at))

    seen: list[str] = []
    cursor = None
    for _ in range(5):
        async with SessionLocal.begin() as session:
            page = await FriendService.list_page(session, uid="ME222222", cursor=cursor, limit=2)
        seen.extend(item["uid"] for item in page.friends)
        cursor = page.next_cursor
        if cursor is None:
            break

    assert sorted(seen) == friends
