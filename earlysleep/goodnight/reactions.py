from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.db.models.goodnight_reactions import GoodnightReactionEvent
from earlysleep.db.repo.goodnight_repo import GoodnightRepo
from earlysleep.db.repo.reactions_repo import ReactionsRepo

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class ReactionGroup:
    message_id: str
    event_ids: list[int] = field(default_factory=list)
    delta_likes: int = 0
    delta_dislikes: int = 0
    delta_score: int = 0

    @property
    def is_noop(self) -> bool:
        return self.delta_likes == 0 and self.delta_dislikes == 0 and self.delta_score == 0


def group_reaction_events(events: Iterable[GoodnightReactionEvent]) -> list[ReactionGroup]:
    """Sums event deltas per message, keeping first-seen message order."""
    groups: dict[str, ReactionGroup] = {}
    for event in events:
        if not event.message_id:
            continue
        group = groups.get(event.message_id)
        if group is None:
            group = ReactionGroup(message_id=event.message_id)
            groups[event.message_id] = group
        group.event_ids.append(int(event.id))
        group.delta_likes += int(event.delta_likes or 0)
        group.delta_dislikes += int(event.delta_dislikes or 0)
        group.delta_score += int(event.delta_score or 0)
    return list(groups.values())


async def consume_reactions(
    session: AsyncSession,
    *,
    batch_size: int = 100,
    now_utc: datetime | None = None,
) -> dict[str, int]:
    """Folds one batch of queued reaction events into the message counters.

    Events of a message whose increment fails are marked failed and left for a later diagnostic pass.
    """
    now = now_utc or datetime.now(timezone.utc)
    events = await ReactionsRepo.claim_queued_batch(session, limit=batch_size)
    if not events:
        return {"consumed": 0, "grouped": 0, "applied": 0, "failed": 0}

    groups = group_reaction_events(events)
    applied = 0
    failed = 0
    for group in groups:
        if group.is_noop:
            await ReactionsRepo.mark_events(session, event_ids=group.event_ids, status="done", now_utc=now)
            continue

        updated = 0
        try:
            async with session.begin_nested():
                updated = await GoodnightRepo.increment_counters(
                    session,
                    message_id=group.message_id,
                    delta_likes=group.delta_likes,
                    delta_dislikes=group.delta_dislikes,
                    delta_score=group.delta_score,
                )
        except SQLAlchemyError:
            logger.exception("goodnight_reactions_increment_failed", message_id=group.message_id)

        if updated:
            applied += 1
            await ReactionsRepo.mark_events(session, event_ids=group.event_ids, status="done", now_utc=now)
        else:
            failed += 1
            logger.warning(
                "goodnight_reactions_group_failed",
                message_id=group.message_id,
                events=len(group.event_ids),
            )
            await ReactionsRepo.mark_events(session, event_ids=group.event_ids, status="failed", now_utc=now)

    result = {"consumed": len(events), "grouped": len(groups), "applied": applied, "failed": failed}
    logger.info("goodnight_reactions_consumed", **result)
    return result
