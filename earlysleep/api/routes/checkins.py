from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.api.deps import as_body, caller_openid, optional_str
from earlysleep.checkins.service import CheckinService
from earlysleep.core.dates import normalize_date_key, today_from_offset
from earlysleep.core.envelope import run_handler
from earlysleep.db.models.users import User
from earlysleep.db.session import SessionLocal
from earlysleep.goodnight.constants import DEFAULT_MIN_SCORE
from earlysleep.goodnight.service import GoodnightService
from earlysleep.identity.service import IdentityService

router = APIRouter(prefix="/api/checkins", tags=["checkins"])
logger = structlog.get_logger(__name__)


async def _auto_pick_message_id(session: AsyncSession, user: User, min_score: object) -> str | None:
    resolved_min_score = DEFAULT_MIN_SCORE
    if isinstance(min_score, int) and not isinstance(min_score, bool):
        resolved_min_score = min_score
    try:
        async with session.begin_nested():
            message = await GoodnightService.pick_for_user(session, user=user, min_score=resolved_min_score)
    except SQLAlchemyError:
        logger.warning("checkin_goodnight_pick_failed", uid=user.uid, exc_info=True)
        return None
    return message.id if message is not None else None


@router.post("/submit")
async def submit_checkin(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            today = today_from_offset(user.tz_offset_minutes)
            message_id = optional_str(body, "gnMsgId")
            existing = await CheckinService.get_status(session, uid=user.uid, date_key=today)
            if message_id is None and existing is None:
                message_id = await _auto_pick_message_id(session, user, body.get("minScore"))

            outcome, summary = await CheckinService.record_for_user(
                session,
                user=user,
                date_key=today,
                status=body.get("status"),
                goodnight_message_id=message_id,
            )
            return {
                "duplicate": outcome.duplicate,
                "record": outcome.record.as_payload(),
                "date": outcome.record.date,
                "status": outcome.record.status,
                "gnMsgId": outcome.record.goodnight_message_id,
                "streak": summary.streak,
                "totalDays": summary.total_days,
                "todayStatus": summary.today_status,
                "slotKey": user.slot_key,
            }

    return await run_handler("checkins.submit", _call)


@router.post("/status")
async def checkin_status(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            date_key = normalize_date_key(body.get("date")) or today_from_offset(user.tz_offset_minutes)
            record = await CheckinService.get_status(session, uid=user.uid, date_key=date_key)
            return {
                "date": date_key,
                "checkedIn": record is not None,
                "status": record.status if record is not None else None,
                "gnMsgId": record.goodnight_message_id if record is not None else None,
                "timestamp": record.timestamp if record is not None else None,
            }

    return await run_handler("checkins.status", _call)


@router.post("/range")
async def checkin_range(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            views, next_cursor = await CheckinService.list_range(
                session,
                uid=user.uid,
                from_date=body.get("from"),
                to_date=body.get("to"),
                cursor=body.get("cursor"),
                limit=body.get("limit"),
            )
            return {"list": [view.as_payload() for view in views], "nextCursor": next_cursor}

    return await run_handler("checkins.range", _call)


@router.post("/streak")
async def checkin_streak(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            up_to = normalize_date_key(body.get("date")) or today_from_offset(user.tz_offset_minutes)
            computed = await CheckinService.recompute_streak(session, uid=user.uid, up_to_date=up_to)
            return {
                "date": up_to,
                "streak": computed,
                "storedStreak": user.streak,
                "totalDays": user.total_days,
            }

    return await run_handler("checkins.streak", _call)
