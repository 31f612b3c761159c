from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from earlysleep.api.deps import as_body, caller_openid, optional_bool
from earlysleep.core.dates import normalize_date_key, today_from_offset
from earlysleep.core.envelope import run_handler
from earlysleep.db.session import SessionLocal
from earlysleep.goodnight.constants import DEFAULT_MIN_SCORE
from earlysleep.goodnight.service import GoodnightService, normalize_reaction, to_message_response
from earlysleep.identity.service import IdentityService

router = APIRouter(prefix="/api/goodnight", tags=["goodnight"])


@router.post("/submit")
async def submit_message(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            date_key = normalize_date_key(body.get("date")) or today_from_offset(user.tz_offset_minutes)
            result = await GoodnightService.submit(session, user=user, date_key=date_key, text=body.get("text"))
            return {"messageId": result.message_id, "duplicate": result.duplicate}

    return await run_handler("goodnight.submit", _call)


@router.post("/random")
async def random_message(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)
    min_score = body.get("minScore")
    if isinstance(min_score, bool) or not isinstance(min_score, int):
        min_score = DEFAULT_MIN_SCORE

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            message = await GoodnightService.pick_for_user(
                session,
                user=user,
                prefer_slot=optional_bool(body, "preferSlot", True),
                avoid_self=optional_bool(body, "avoidSelf", True),
                min_score=min_score,
            )
            return {"message": to_message_response(message) if message is not None else None}

    return await run_handler("goodnight.random", _call)


@router.post("/react")
async def react_to_message(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        value = normalize_reaction(body.get("value"), body.get("type"))
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            result = await GoodnightService.react(
                session,
                voter_uid=user.uid,
                message_id=body.get("messageId"),
                value=value,
            )
            return result.as_payload()

    return await run_handler("goodnight.react", _call)
