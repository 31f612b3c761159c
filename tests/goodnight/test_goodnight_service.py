from __future__ import annotations

import random
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from earlysleep.core.errors import InvalidArgError, NotFoundError
from earlysleep.goodnight import service as goodnight_service
from earlysleep.goodnight.service import (
    GoodnightService,
    ReactResult,
    build_message_id,
    normalize_reaction,
    normalize_text,
    reaction_deltas,
)

NOW = datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc)


def _user(uid: str = "AAAA2222", slot_key: str = "22:30") -> SimpleNamespace:
    return SimpleNamespace(id=f"openid-{uid}", uid=uid, slot_key=slot_key)


def test_normalize_reaction_accepts_values_and_types() -> None:
    assert normalize_reaction(1) == 1
    assert normalize_reaction(-1) == -1
    assert normalize_reaction(1.0) == 1
    assert normalize_reaction("-1") == -1
    assert normalize_reaction(None, "like") == 1
    assert normalize_reaction(None, " Dislike ") == -1


@pytest.mark.parametrize(
    "value, reaction_type",
    [(0, None), (2, None), (True, None), ("up", None), (None, "love")],
)
def test_normalize_reaction_rejects_other_values(value: object, reaction_type: object) -> None:
    with pytest.raises(InvalidArgError):
        normalize_reaction(value, reaction_type)


def test_reaction_deltas_cover_first_vote_and_switch() -> None:
    assert reaction_deltas(1) == (1, 0, 1)
    assert reaction_deltas(-1) == (0, 1, -1)
    assert reaction_deltas(-1, 1) == (-1, 1, -2)
    assert reaction_deltas(1, -1) == (1, -1, 2)


def test_normalize_text_trims_and_caps_length() -> None:
    assert normalize_text("  sleep well  ") == "sleep well"
    assert len(normalize_text("z" * 500)) == 240
    assert normalize_text(None) == ""


def test_react_result_payload_only_carries_set_flags() -> None:
    assert ReactResult(queued=True, first_vote=True).as_payload() == {"queued": True, "firstVote": True}
    assert ReactResult(queued=False, dedup=True).as_payload() == {"queued": False, "dedup": True}


@pytest.mark.asyncio
async def test_submit_creates_once_and_reports_duplicates(monkeypatch) -> None:
    stored: dict[str, dict] = {}

    async def _exists(session, message_id: str):
        return message_id in stored

    async def _legacy(session, *, user_id: str, date: str):
        return None

    async def _try_create(session, **kwargs):
        stored[kwargs["message_id"]] = kwargs
        return True

    monkeypatch.setattr(goodnight_service.GoodnightRepo, "exists", _exists)
    monkeypatch.setattr(goodnight_service.GoodnightRepo, "get_id_for_user_date", _legacy)
    monkeypatch.setattr(goodnight_service.GoodnightRepo, "try_create", _try_create)

    first = await GoodnightService.submit(
        object(),
        user=_user(),
        date_key="20240101",
        text="  sweet dreams ",
        now_utc=NOW,
        rng=random.Random(3),
    )
    second = await GoodnightService.submit(object(), user=_user(), date_key="20240101", text="again")

    assert first.message_id == build_message_id("AAAA2222", "20240101") == "AAAA2222_20240101"
    assert first.duplicate is False
    assert second.duplicate is True
    assert stored[first.message_id]["text"] == "sweet dreams"
    assert stored[first.message_id]["slot_key"] == "22:30"
    assert 0.0 <= stored[first.message_id]["rand"] < 1.0


@pytest.mark.asyncio
async def test_submit_returns_legacy_message_id(monkeypatch) -> None:
    async def _exists(session, message_id: str):
        return False

    async def _legacy(session, *, user_id: str, date: str):
        return "legacy-message"

    async def _fail_create(session, **kwargs):
        raise AssertionError("must not insert")

    monkeypatch.setattr(goodnight_service.GoodnightRepo, "exists", _exists)
    monkeypatch.setattr(goodnight_service.GoodnightRepo, "get_id_for_user_date", _legacy)
    monkeypatch.setattr(goodnight_service.GoodnightRepo, "try_create", _fail_create)

    result = await GoodnightService.submit(object(), user=_user(), date_key="20240101", text="hi")

    assert (result.message_id, result.duplicate) == ("legacy-message", True)


@pytest.mark.asyncio
async def test_submit_rejects_blank_text() -> None:
    with pytest.raises(InvalidArgError):
        await GoodnightService.submit(object(), user=_user(), date_key="20240101", text="   ")


@pytest.mark.asyncio
async def test_pick_random_wraps_around_when_nothing_after_pivot(monkeypatch) -> None:
    calls: list[tuple[str, float]] = []
    wrapped = SimpleNamespace(id="m-low", rand=0.05)

    async def _after(session, *, pivot: float, **filters):
        calls.append(("after", pivot))
        return None

    async def _before(session, *, pivot: float, **filters):
        calls.append(("before", pivot))
        assert filters == {"exclude_uid": "AAAA2222", "slot_key": None, "min_score": -2}
        return wrapped

    monkeypatch.setattr(goodnight_service.GoodnightRepo, "first_at_or_after_pivot", _after)
    monkeypatch.setattr(goodnight_service.GoodnightRepo, "first_before_pivot", _before)

    picked = await GoodnightService.pick_random(object(), exclude_uid="AAAA2222", pivot=0.9)

    assert picked is wrapped
    assert calls == [("after", 0.9), ("before", 0.9)]


@pytest.mark.asyncio
async def test_pick_for_user_falls_back_to_all_slots(monkeypatch) -> None:
    seen_slots: list[str | None] = []
    fallback = SimpleNamespace(id="m-any")

    async def _after(session, *, pivot: float, exclude_uid, slot_key, min_score):
        seen_slots.append(slot_key)
        return None if slot_key is not None else fallback

    async def _before(session, *, pivot: float, exclude_uid, slot_key, min_score):
        return None

    monkeypatch.setattr(goodnight_service.GoodnightRepo, "first_at_or_after_pivot", _after)
    monkeypatch.setattr(goodnight_service.GoodnightRepo, "first_before_pivot", _before)

    picked = await GoodnightService.pick_for_user(object(), user=_user(), rng=random.Random(1))

    assert picked is fallback
    assert seen_slots == ["22:30", None]


def _in_memory_pool(messages: list[SimpleNamespace]):
    def _eligible(exclude_uid, slot_key, min_score):
        return sorted(
            (
                message
                for message in messages
                if message.status == "approved"
                and (not exclude_uid or message.uid != exclude_uid)
                and (not slot_key or message.slot_key == slot_key)
                and (min_score is None or message.score >= min_score)
            ),
            key=lambda message: (message.rand, message.id),
        )

    async def _after(session, *, pivot: float, exclude_uid, slot_key, min_score):
        return next((m for m in _eligible(exclude_uid, slot_key, min_score) if m.rand >= pivot), None)

    async def _before(session, *, pivot: float, exclude_uid, slot_key, min_score):
        return next((m for m in _eligible(exclude_uid, slot_key, min_score) if m.rand < pivot), None)

    return _after, _before


@pytest.mark.asyncio
async def test_pick_random_reaches_every_eligible_message_evenly(monkeypatch) -> None:
    eligible_ids = [f"m{index}" for index in range(5)]
    messages = [
        SimpleNamespace(id=message_id, uid="BBBB3333", slot_key="22:30", status="approved", score=0,
                        rand=0.1 + 0.2 * index)
        for index, message_id in enumerate(eligible_ids)
    ]
    messages += [
        SimpleNamespace(id="own", uid="AAAA2222", slot_key="22:30", status="approved", score=0, rand=0.2),
        SimpleNamespace(id="hidden", uid="BBBB3333", slot_key="22:30", status="rejected", score=0, rand=0.4),
        SimpleNamespace(id="downvoted", uid="BBBB3333", slot_key="22:30", status="approved", score=-5, rand=0.6),
    ]
    after, before = _in_memory_pool(messages)
    monkeypatch.setattr(goodnight_service.GoodnightRepo, "first_at_or_after_pivot", after)
    monkeypatch.setattr(goodnight_service.GoodnightRepo, "first_before_pivot", before)

    rng = random.Random(2024)
    draws = 5000
    counts = {message_id: 0 for message_id in eligible_ids}
    for _ in range(draws):
        picked = await GoodnightService.pick_random(object(), exclude_uid="AAAA2222", rng=rng)
        counts[picked.id] += 1

    assert all(count > 0 for count in counts.values())
    expected = draws / len(eligible_ids)
    assert all(0.8 * expected <= count <= 1.2 * expected for count in counts.values())
    assert counts["m0"] < 1.3 * counts["m4"]
    assert counts["m4"] < 1.3 * counts["m0"]


class _FakeVotes:
    def __init__(self) -> None:
        self.votes: dict[str, SimpleNamespace] = {}
        self.events: list[dict] = []

    def install(self, monkeypatch, *, messages: set[str]) -> None:
        async def _exists(session, message_id: str):
            return message_id in messages

        async def _try_create_vote(session, *, vote_id: str, message_id: str, voter_uid: str, value: int, now_utc):
            if vote_id in self.votes:
                return False
            self.votes[vote_id] = SimpleNamespace(id=vote_id, value=value, updated_at=now_utc)
            return True

        async def _get_vote(session, vote_id: str):
            return self.votes.get(vote_id)

        async def _create_event(session, **kwargs):
            self.events.append(kwargs)

        monkeypatch.setattr(goodnight_service.GoodnightRepo, "exists", _exists)
        monkeypatch.setattr(goodnight_service.ReactionsRepo, "try_create_vote", _try_create_vote)
        monkeypatch.setattr(goodnight_service.ReactionsRepo, "get_vote_for_update", _get_vote)
        monkeypatch.setattr(goodnight_service.ReactionsRepo, "create_event", _create_event)


@pytest.mark.asyncio
async def test_react_first_vote_dedup_and_switch(monkeypatch) -> None:
    fake = _FakeVotes()
    fake.install(monkeypatch, messages={"BBBB3333_20240101"})
    session = object()

    message_id = "BBBB3333_20240101"

    first = await GoodnightService.react(session, voter_uid="AAAA2222", message_id=message_id, value=1)
    repeat = await GoodnightService.react(session, voter_uid="AAAA2222", message_id=message_id, value=1)
    switched = await GoodnightService.react(session, voter_uid="AAAA2222", message_id=message_id, value=-1)

    assert first.as_payload() == {"queued": True, "firstVote": True}
    assert repeat.as_payload() == {"queued": False, "dedup": True}
    assert switched.as_payload() == {"queued": True, "updated": True}
    assert [(e["delta_likes"], e["delta_dislikes"], e["delta_score"]) for e in fake.events] == [
        (1, 0, 1),
        (-1, 1, -2),
    ]
    assert fake.votes["AAAA2222#BBBB3333_20240101"].value == -1


@pytest.mark.asyncio
async def test_react_rejects_missing_message_and_bad_value(monkeypatch) -> None:
    fake = _FakeVotes()
    fake.install(monkeypatch, messages=set())

    with pytest.raises(NotFoundError):
        await GoodnightService.react(object(), voter_uid="AAAA2222", message_id="nope", value=1)
    with pytest.raises(InvalidArgError):
        await GoodnightService.react(object(), voter_uid="AAAA2222", message_id="nope", value=0)
    with pytest.raises(InvalidArgError):
        await GoodnightService.react(object(), voter_uid="AAAA2222", message_id="  ", value=1)
    assert fake.events == []
