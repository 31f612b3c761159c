from __future__ import annotations

import random

import pytest

from earlysleep.core.errors import InternalError
from earlysleep.core.uid_codes import UID_ALPHABET, generate_uid, generate_unique_uid


def test_alphabet_excludes_ambiguous_symbols() -> None:
    assert len(UID_ALPHABET) == 62 - 5
    assert len(set(UID_ALPHABET)) == len(UID_ALPHABET)
    assert not set("01IlO") & set(UID_ALPHABET)


def test_generate_uid_length_and_charset() -> None:
    rng = random.Random(7)
    for _ in range(200):
        uid = generate_uid(rng)
        assert 8 <= len(uid) <= 10
        assert set(uid) <= set(UID_ALPHABET)


def test_generate_uid_is_deterministic_for_seeded_source() -> None:
    assert generate_uid(random.Random(42)) == generate_uid(random.Random(42))


@pytest.mark.asyncio
async def test_generate_unique_uid_retries_after_collisions() -> None:
    seen: list[str] = []

    async def _exists(candidate: str) -> bool:
        seen.append(candidate)
        return len(seen) <= 3

    uid = await generate_unique_uid(_exists, rng=random.Random(1))

    assert len(seen) == 4
    assert uid == seen[-1]

    replay_rng = random.Random(1)
    expected = [generate_uid(replay_rng) for _ in range(4)]
    assert seen == expected


@pytest.mark.asyncio
async def test_generate_unique_uid_fails_after_max_attempts() -> None:
    calls = 0

    async def _always_taken(candidate: str) -> bool:
        nonlocal calls
        calls += 1
        return True

    with pytest.raises(InternalError):
        await generate_unique_uid(_always_taken, rng=random.Random(3))
    assert calls == 10
