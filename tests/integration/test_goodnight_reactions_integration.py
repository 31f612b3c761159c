from __future__ import annotations

import random

import pytest
from sqlalchemy import select

from earlysleep.db.models.goodnight_messages import GoodnightMessage
from earlysleep.db.models.goodnight_reactions import GoodnightReactionEvent
from earlysleep.db.repo.users_repo import UsersRepo
from earlysleep.db.session import SessionLocal
from earlysleep.goodnight.reactions import consume_reactions
from earlysleep.goodnight.service import GoodnightService
from earlysleep.identity.service import IdentityService


async def _create_user(openid: str, seed: int, target_hm: str = "22:00") -> str:
    async with SessionLocal.begin() as session:
        user = await IdentityService.ensure_user(
            session,
            openid=openid,
            overrides={"targetHM": target_hm},
            rng=random.Random(seed),
        )
        return user.uid


async def _submit(openid: str, date_key: str, seed: int) -> str:
    async with SessionLocal.begin() as session:
        user = await UsersRepo.get_by_id(session, openid)
        result = await GoodnightService.submit(
            session,
            user=user,
            date_key=date_key,
            text=f"good night from {openid}",
            rng=random.Random(seed),
        )
        return result.message_id


@pytest.mark.asyncio
async def test_consumer_applies_exact_counter_deltas() -> None:
    await _create_user("openid-author", 31)
    voters = [await _create_user(f"openid-voter-{index}", 40 + index) for index in range(3)]
    message_id = await _submit("openid-author", "20240101", 1)

    for voter_uid in voters:
        async with SessionLocal.begin() as session:
            result = await GoodnightService.react(session, voter_uid=voter_uid, message_id=message_id, value=1)
            assert result.first_vote is True
    async with SessionLocal.begin() as session:
        repeat = await GoodnightService.react(session, voter_uid=voters[0], message_id=message_id, value=1)
        switched = await GoodnightService.react(session, voter_uid=voters[1], message_id=message_id, value=-1)

    assert repeat.dedup is True
    assert switched.updated is True

    async with SessionLocal.begin() as session:
        summary = await consume_reactions(session, batch_size=100)
    async with SessionLocal.begin() as session:
        again = await consume_reactions(session, batch_size=100)
        message = await session.get(GoodnightMessage, message_id)
        statuses = (await session.execute(select(GoodnightReactionEvent.status))).scalars().all()

    assert summary == {"consumed": 4, "grouped": 1, "applied": 1, "failed": 0}
    assert again["consumed"] == 0
    assert (message.likes, message.dislikes, message.score) == (2, 1, 1)
    assert set(statuses) == {"done"}


@pytest.mark.asyncio
async def test_events_for_missing_message_are_marked_failed() -> None:
    voter_uid = await _create_user("openid-lonely-voter", 51)
    await _create_user("openid-author-2", 52)
    message_id = await _submit("openid-author-2", "20240101", 2)
    async with SessionLocal.begin() as session:
        await GoodnightService.react(session, voter_uid=voter_uid, message_id=message_id, value=-1)
    async with SessionLocal.begin() as session:
        await session.delete(await session.get(GoodnightMessage, message_id))

    async with SessionLocal.begin() as session:
        summary = await consume_reactions(session)
        statuses = (await session.execute(select(GoodnightReactionEvent.status))).scalars().all()

    assert summary["failed"] == 1
    assert statuses == ["failed"]


@pytest.mark.asyncio
async def test_fixed_pivot_pick_is_deterministic_and_wraps_around() -> None:
    await _create_user("openid-reader", 61)
    for index in range(3):
        await _create_user(f"openid-writer-{index}", 70 + index)
        await _submit(f"openid-writer-{index}", "20240101", 100 + index)

    async with SessionLocal.begin() as session:
        messages = (
            (await session.execute(select(GoodnightMessage).order_by(GoodnightMessage.rand.asc()))).scalars().all()
        )
        reader_uid = (await UsersRepo.get_by_id(session, "openid-reader")).uid
        middle = messages[1]
        first = await GoodnightService.pick_random(session, exclude_uid=reader_uid, pivot=middle.rand)
        second = await GoodnightService.pick_random(session, exclude_uid=reader_uid, pivot=middle.rand)
        wrapped = await GoodnightService.pick_random(session, exclude_uid=reader_uid, pivot=0.999999999)
        own_excluded = await GoodnightService.pick_random(
            session,
            exclude_uid=messages[0].uid,
            pivot=0.999999999,
        )

    assert first.id == second.id == middle.id
    assert wrapped.id == messages[0].id
    assert own_excluded.id == messages[1].id
