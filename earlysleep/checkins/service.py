from __future__ import annotations

import math
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.checkins.rules import build_checkin_id, compute_checkin_summary, streak_from_history
from earlysleep.checkins.types import (
    VALID_CHECKIN_STATUSES,
    CheckinOutcome,
    CheckinSummary,
    CheckinView,
)
from earlysleep.core.dates import DATE_KEY_RE, normalize_date_key
from earlysleep.core.errors import InternalError, InvalidArgError
from earlysleep.db.models.checkins import Checkin
from earlysleep.db.models.users import User
from earlysleep.db.repo.checkins_repo import CheckinsRepo
from earlysleep.db.repo.users_repo import UsersRepo

logger = structlog.get_logger(__name__)

RANGE_DEFAULT_LIMIT = 20
RANGE_MAX_LIMIT = 50
STREAK_HISTORY_LIMIT = 400
MAX_MESSAGE_ID_LENGTH = 64


def _to_view(record: Checkin) -> CheckinView:
    return CheckinView(
        id=record.id,
        uid=record.uid,
        date=record.date,
        status=record.status,
        tz_offset_minutes=int(record.tz_offset_minutes),
        timestamp=record.created_at.isoformat() if record.created_at is not None else None,
        goodnight_message_id=record.goodnight_message_id,
    )


def _validate_submission(
    uid: object,
    date_key: object,
    status: object,
    tz_offset: object,
) -> tuple[str, str, str, int]:
    if not isinstance(uid, str) or not uid.strip() or "#" in uid:
        raise InvalidArgError("missing user uid")
    if not isinstance(date_key, str) or not DATE_KEY_RE.match(date_key.strip()):
        raise InvalidArgError("missing or malformed date")
    normalized_date = normalize_date_key(date_key)
    if normalized_date is None:
        raise InvalidArgError("missing or malformed date")
    if not isinstance(status, str) or status not in VALID_CHECKIN_STATUSES:
        raise InvalidArgError("invalid check-in status")
    if isinstance(tz_offset, bool) or not isinstance(tz_offset, int):
        raise InvalidArgError("missing timezone offset")
    return uid.strip(), normalized_date, status, tz_offset


def _clamp_range_limit(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return RANGE_DEFAULT_LIMIT
    limit = int(value)
    if limit <= 0:
        return RANGE_DEFAULT_LIMIT
    return min(limit, RANGE_MAX_LIMIT)


def _range_bound(value: object, fallback: str) -> str:
    if isinstance(value, str) and DATE_KEY_RE.match(value.strip()):
        return value.strip()
    return fallback


class CheckinService:
    @staticmethod
    async def submit_checkin(
        session: AsyncSession,
        *,
        uid: object,
        date_key: object,
        status: object,
        tz_offset_minutes: object,
        goodnight_message_id: str | None = None,
        now_utc: datetime | None = None,
    ) -> CheckinOutcome:
        """Stores at most one check-in per (uid, date).

        A record that already exists, or that a concurrent writer created first, is returned
        as a duplicate outcome instead of an error.
        """
        resolved_uid, resolved_date, resolved_status, tz_offset = _validate_submission(
            uid, date_key, status, tz_offset_minutes
        )
        if goodnight_message_id is not None and len(goodnight_message_id) > MAX_MESSAGE_ID_LENGTH:
            raise InvalidArgError("malformed goodnight message id")
        checkin_id = build_checkin_id(resolved_uid, resolved_date)

        existing = await CheckinsRepo.get_by_id(session, checkin_id)
        if existing is not None:
            return await CheckinService._duplicate_outcome(
                session,
                existing,
                goodnight_message_id=goodnight_message_id,
            )

        created = await CheckinsRepo.try_create(
            session,
            checkin_id=checkin_id,
            uid=resolved_uid,
            date=resolved_date,
            status=resolved_status,
            tz_offset_minutes=tz_offset,
            goodnight_message_id=goodnight_message_id,
            created_at=now_utc or datetime.now(timezone.utc),
        )
        record = await CheckinsRepo.get_by_id(session, checkin_id)
        if record is None:
            raise InternalError("check-in vanished after write")
        if not created:
            logger.info("checkin_create_conflict", checkin_id=checkin_id)
            return await CheckinService._duplicate_outcome(
                session,
                record,
                goodnight_message_id=goodnight_message_id,
            )

        logger.info("checkin_created", checkin_id=checkin_id, status=resolved_status)
        return CheckinOutcome(record=_to_view(record), duplicate=False)

    @staticmethod
    async def _duplicate_outcome(
        session: AsyncSession,
        record: Checkin,
        *,
        goodnight_message_id: str | None,
    ) -> CheckinOutcome:
        view = _to_view(record)
        if goodnight_message_id and not record.goodnight_message_id:
            attached = await CheckinsRepo.attach_goodnight_message_if_missing(
                session,
                checkin_id=record.id,
                goodnight_message_id=goodnight_message_id,
            )
            if attached:
                refreshed = await CheckinsRepo.get_by_id(session, record.id)
                if refreshed is not None:
                    view = _to_view(refreshed)
        logger.info("checkin_duplicate_submission", checkin_id=record.id)
        return CheckinOutcome(record=view, duplicate=True)

    @staticmethod
    async def record_for_user(
        session: AsyncSession,
        *,
        user: User,
        date_key: str,
        status: str,
        goodnight_message_id: str | None = None,
        now_utc: datetime | None = None,
    ) -> tuple[CheckinOutcome, CheckinSummary]:
        """Submits the user's check-in and, for a new record, advances the user's counters."""
        now = now_utc or datetime.now(timezone.utc)
        outcome = await CheckinService.submit_checkin(
            session,
            uid=user.uid,
            date_key=date_key,
            status=status,
            tz_offset_minutes=user.tz_offset_minutes,
            goodnight_message_id=goodnight_message_id,
            now_utc=now,
        )
        if outcome.duplicate:
            return outcome, CheckinSummary(
                today_status=user.today_status,
                streak=user.streak,
                total_days=user.total_days,
                last_checkin_date=user.last_checkin_date,
            )

        locked = await UsersRepo.get_by_id_for_update(session, user.id)
        owner = locked or user
        summary = compute_checkin_summary(
            streak=owner.streak,
            total_days=owner.total_days,
            last_checkin_date=owner.last_checkin_date or "",
            status=outcome.record.status,
            date_key=outcome.record.date,
        )
        await UsersRepo.apply_checkin_summary(
            session,
            user_id=user.id,
            today_status=summary.today_status,
            streak=summary.streak,
            total_days=summary.total_days,
            last_checkin_date=summary.last_checkin_date,
            now_utc=now,
        )
        return outcome, summary

    @staticmethod
    async def get_status(session: AsyncSession, *, uid: str, date_key: str) -> CheckinView | None:
        record = await CheckinsRepo.get_by_id(session, build_checkin_id(uid, date_key))
        if record is None:
            return None
        return _to_view(record)

    @staticmethod
    async def list_range(
        session: AsyncSession,
        *,
        uid: str,
        from_date: object = None,
        to_date: object = None,
        cursor: object = None,
        limit: object = None,
    ) -> tuple[list[CheckinView], str | None]:
        resolved_from = _range_bound(from_date, "00000000")
        resolved_to = _range_bound(to_date, "99999999")
        if resolved_from > resolved_to:
            raise InvalidArgError("invalid date range")

        resolved_limit = _clamp_range_limit(limit)
        before_id = cursor if isinstance(cursor, str) and cursor.startswith(f"{uid}#") else None
        records = await CheckinsRepo.list_for_uid_between(
            session,
            uid=uid,
            from_date=resolved_from,
            to_date=resolved_to,
            before_id=before_id,
            limit=resolved_limit,
        )
        next_cursor = records[-1].id if len(records) == resolved_limit else None
        return [_to_view(record) for record in records], next_cursor

    @staticmethod
    async def recompute_streak(session: AsyncSession, *, uid: str, up_to_date: str) -> int:
        history = await CheckinsRepo.list_statuses_for_uid_up_to(
            session,
            uid=uid,
            to_date=up_to_date,
            limit=STREAK_HISTORY_LIMIT,
        )
        return streak_from_history(history)
