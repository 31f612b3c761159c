from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.core.errors import InternalError, InvalidArgError, NotFoundError
from earlysleep.db.models.goodnight_messages import GoodnightMessage
from earlysleep.db.models.users import User
from earlysleep.db.repo.goodnight_repo import GoodnightRepo
from earlysleep.db.repo.reactions_repo import ReactionsRepo
from earlysleep.goodnight.constants import (
    DEFAULT_MIN_SCORE,
    MAX_TEXT_LENGTH,
    REACTION_DISLIKE,
    REACTION_LIKE,
    REACTION_TYPES,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SubmitResult:
    message_id: str
    duplicate: bool


@dataclass(frozen=True, slots=True)
class ReactResult:
    queued: bool
    dedup: bool = False
    first_vote: bool = False
    updated: bool = False

    def as_payload(self) -> dict[str, bool]:
        payload = {"queued": self.queued}
        if self.dedup:
            payload["dedup"] = True
        if self.first_vote:
            payload["firstVote"] = True
        if self.updated:
            payload["updated"] = True
        return payload


def build_message_id(uid: str, date_key: str) -> str:
    return f"{uid}_{date_key}"


def build_vote_id(voter_uid: str, message_id: str) -> str:
    return f"{voter_uid}#{message_id}"


def normalize_text(value: object) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()[:MAX_TEXT_LENGTH]


def normalize_reaction(value: object = None, reaction_type: object = None) -> int:
    """Maps a vote value (1/-1) or a reaction type (like/dislike) to +1/-1."""
    if isinstance(value, bool):
        value = None
    if isinstance(value, (int, float)) and value in (REACTION_LIKE, REACTION_DISLIKE):
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("+-").isdigit():
        parsed = int(value.strip())
        if parsed in (REACTION_LIKE, REACTION_DISLIKE):
            return parsed
    if isinstance(reaction_type, str) and reaction_type.strip().lower() in REACTION_TYPES:
        return REACTION_TYPES[reaction_type.strip().lower()]
    raise InvalidArgError("invalid reaction value")


def reaction_deltas(value: int, previous: int | None = None) -> tuple[int, int, int]:
    """Returns (likes, dislikes, score) deltas that move a voter from `previous` to `value`."""
    delta_likes = (1 if value == REACTION_LIKE else 0) - (1 if previous == REACTION_LIKE else 0)
    delta_dislikes = (1 if value == REACTION_DISLIKE else 0) - (1 if previous == REACTION_DISLIKE else 0)
    return delta_likes, delta_dislikes, value - (previous or 0)


def to_message_response(message: GoodnightMessage) -> dict[str, Any]:
    return {
        "_id": message.id,
        "uid": message.uid,
        "date": message.date,
        "text": message.text,
        "slotKey": message.slot_key,
        "likes": message.likes,
        "dislikes": message.dislikes,
        "score": message.score,
        "createdAt": message.created_at.isoformat() if message.created_at is not None else None,
    }


class GoodnightService:
    @staticmethod
    async def submit(
        session: AsyncSession,
        *,
        user: User,
        date_key: str,
        text: object,
        now_utc: datetime | None = None,
        rng: random.Random | None = None,
    ) -> SubmitResult:
        normalized = normalize_text(text)
        if not normalized:
            raise InvalidArgError("text must not be empty")

        message_id = build_message_id(user.uid, date_key)
        if await GoodnightRepo.exists(session, message_id):
            return SubmitResult(message_id=message_id, duplicate=True)
        legacy_id = await GoodnightRepo.get_id_for_user_date(session, user_id=user.id, date=date_key)
        if legacy_id is not None:
            return SubmitResult(message_id=legacy_id, duplicate=True)

        created = await GoodnightRepo.try_create(
            session,
            message_id=message_id,
            user_id=user.id,
            uid=user.uid,
            date=date_key,
            text=normalized,
            slot_key=user.slot_key,
            rand=(rng or random).random(),
            now_utc=now_utc or datetime.now(timezone.utc),
        )
        if not created:
            logger.info("goodnight_submit_conflict", message_id=message_id)
            return SubmitResult(message_id=message_id, duplicate=True)

        logger.info("goodnight_message_created", message_id=message_id, slot_key=user.slot_key)
        return SubmitResult(message_id=message_id, duplicate=False)

    @staticmethod
    async def pick_random(
        session: AsyncSession,
        *,
        exclude_uid: str | None = None,
        slot_key: str | None = None,
        min_score: int | None = DEFAULT_MIN_SCORE,
        pivot: float | None = None,
        rng: random.Random | None = None,
    ) -> GoodnightMessage | None:
        """Picks the first message at or after a random pivot, wrapping around to the smallest rand.

        A fixed pivot always returns the same message for unchanged data.
        """
        resolved_pivot = pivot if pivot is not None else (rng or random).random()
        filters = {"exclude_uid": exclude_uid, "slot_key": slot_key, "min_score": min_score}
        found = await GoodnightRepo.first_at_or_after_pivot(session, pivot=resolved_pivot, **filters)
        if found is not None:
            return found
        return await GoodnightRepo.first_before_pivot(session, pivot=resolved_pivot, **filters)

    @staticmethod
    async def pick_for_user(
        session: AsyncSession,
        *,
        user: User,
        prefer_slot: bool = True,
        avoid_self: bool = True,
        min_score: int | None = DEFAULT_MIN_SCORE,
        rng: random.Random | None = None,
    ) -> GoodnightMessage | None:
        exclude_uid = user.uid if avoid_self else None
        if prefer_slot and user.slot_key:
            message = await GoodnightService.pick_random(
                session,
                exclude_uid=exclude_uid,
                slot_key=user.slot_key,
                min_score=min_score,
                rng=rng,
            )
            if message is not None:
                return message
        return await GoodnightService.pick_random(
            session,
            exclude_uid=exclude_uid,
            min_score=min_score,
            rng=rng,
        )

    @staticmethod
    async def react(
        session: AsyncSession,
        *,
        voter_uid: str,
        message_id: object,
        value: int,
        now_utc: datetime | None = None,
    ) -> ReactResult:
        """Queues a reaction event; the message counters are updated by the consumer job.

        Each voter holds one vote per message. Repeating it queues nothing, switching it queues
        the delta between the two votes.
        """
        if not isinstance(message_id, str) or not message_id.strip():
            raise InvalidArgError("missing message id")
        resolved_message_id = message_id.strip()
        if value not in (REACTION_LIKE, REACTION_DISLIKE):
            raise InvalidArgError("invalid reaction value")
        if not await GoodnightRepo.exists(session, resolved_message_id):
            raise NotFoundError("message not found")

        now = now_utc or datetime.now(timezone.utc)
        vote_id = build_vote_id(voter_uid, resolved_message_id)
        created = await ReactionsRepo.try_create_vote(
            session,
            vote_id=vote_id,
            message_id=resolved_message_id,
            voter_uid=voter_uid,
            value=value,
            now_utc=now,
        )
        if created:
            delta_likes, delta_dislikes, delta_score = reaction_deltas(value)
            await ReactionsRepo.create_event(
                session,
                message_id=resolved_message_id,
                voter_uid=voter_uid,
                delta_likes=delta_likes,
                delta_dislikes=delta_dislikes,
                delta_score=delta_score,
                now_utc=now,
            )
            logger.info("goodnight_reaction_queued", message_id=resolved_message_id, value=value)
            return ReactResult(queued=True, first_vote=True)

        vote = await ReactionsRepo.get_vote_for_update(session, vote_id)
        if vote is None:
            raise InternalError("vote vanished after write")
        if vote.value == value:
            return ReactResult(queued=False, dedup=True)

        delta_likes, delta_dislikes, delta_score = reaction_deltas(value, vote.value)
        vote.value = value
        vote.updated_at = now
        await ReactionsRepo.create_event(
            session,
            message_id=resolved_message_id,
            voter_uid=voter_uid,
            delta_likes=delta_likes,
            delta_dislikes=delta_dislikes,
            delta_score=delta_score,
            now_utc=now,
        )
        logger.info("goodnight_reaction_switched", message_id=resolved_message_id, value=value)
        return ReactResult(queued=True, updated=True)
