from __future__ import annotations

import random
import secrets
from collections.abc import Awaitable, Callable

from earlysleep.core.errors import InternalError

# 57 symbols: digits and letters without 0, 1, I, l, O.
UID_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
UID_MIN_LENGTH = 8
UID_MAX_LENGTH = 10
UID_MAX_ATTEMPTS = 10

_system_random = secrets.SystemRandom()


def generate_uid(rng: random.Random | None = None) -> str:
    """Generates a public user id of 8-10 characters with low typo ambiguity."""
    source = rng or _system_random
    length = source.randint(UID_MIN_LENGTH, UID_MAX_LENGTH)
    return "".join(source.choice(UID_ALPHABET) for _ in range(length))


async def generate_unique_uid(
    uid_exists: Callable[[str], Awaitable[bool]],
    *,
    rng: random.Random | None = None,
    max_attempts: int = UID_MAX_ATTEMPTS,
) -> str:
    for _ in range(max_attempts):
        candidate = generate_uid(rng)
        if not await uid_exists(candidate):
            return candidate
    raise InternalError("unable to generate unique uid")
