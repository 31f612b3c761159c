from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.core.config import get_settings
from earlysleep.core.dates import DATE_KEY_RE, normalize_date_key
from earlysleep.core.errors import InvalidArgError
from earlysleep.db.repo.checkins_repo import CheckinsRepo
from earlysleep.db.repo.slot_daily_repo import SlotDailyRepo
from earlysleep.db.repo.users_repo import UsersRepo

logger = structlog.get_logger(__name__)

UNKNOWN_SLOT_KEY = "00:00"


@dataclass(slots=True)
class SlotStats:
    participants: int = 0
    hits: int = 0

    @property
    def hit_rate(self) -> float:
        if self.participants <= 0:
            return 0.0
        return round(self.hits / self.participants, 4)


def accumulate_slot_stats(
    stats: dict[str, SlotStats],
    records: Iterable[tuple[str, str]],
    slot_keys: Mapping[str, str],
) -> dict[str, SlotStats]:
    """Adds (uid, status) check-ins to per-slot counters; users without a profile land in 00:00."""
    for uid, status in records:
        slot_key = slot_keys.get(uid) or UNKNOWN_SLOT_KEY
        entry = stats.setdefault(slot_key, SlotStats())
        entry.participants += 1
        if status == "hit":
            entry.hits += 1
    return stats


async def _resolve_slot_keys(session: AsyncSession, uids: list[str], chunk_size: int) -> dict[str, str]:
    unique_uids = list(dict.fromkeys(uid for uid in uids if uid))
    slot_keys: dict[str, str] = {}
    for offset in range(0, len(unique_uids), chunk_size):
        slot_keys.update(await UsersRepo.map_slot_keys_by_uids(session, unique_uids[offset : offset + chunk_size]))
    return slot_keys


async def rollup(
    session: AsyncSession,
    *,
    date_key: object,
    now_utc: datetime | None = None,
) -> dict[str, object]:
    """Recomputes every slot_daily row of a date from its check-ins and overwrites them."""
    if not isinstance(date_key, str) or not DATE_KEY_RE.match(date_key) or normalize_date_key(date_key) is None:
        raise InvalidArgError("missing or malformed date")

    settings = get_settings()
    stats: dict[str, SlotStats] = {}
    after_id: str | None = None
    scanned = 0
    while True:
        page = await CheckinsRepo.list_page_for_date(
            session,
            date=date_key,
            after_id=after_id,
            limit=settings.rollup_page_size,
        )
        if not page:
            break
        slot_keys = await _resolve_slot_keys(session, [uid for _, uid, _ in page], settings.user_lookup_chunk_size)
        accumulate_slot_stats(stats, [(uid, status) for _, uid, status in page], slot_keys)
        scanned += len(page)
        after_id = page[-1][0]
        if len(page) < settings.rollup_page_size:
            break

    now = now_utc or datetime.now(timezone.utc)
    for slot_key, entry in stats.items():
        await SlotDailyRepo.overwrite(
            session,
            slot_key=slot_key,
            date=date_key,
            participants=entry.participants,
            hits=entry.hits,
            hit_rate=entry.hit_rate,
            now_utc=now,
        )
    cleared = await SlotDailyRepo.delete_for_date_except(session, date=date_key, keep_slot_keys=stats.keys())

    logger.info("slot_rollup_completed", date=date_key, slots=len(stats), checkins=scanned, cleared=cleared)
    return {"date": date_key, "slots": len(stats)}
