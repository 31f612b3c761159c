from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from earlysleep.api.deps import as_body, caller_openid
from earlysleep.core.envelope import run_handler
from earlysleep.db.session import SessionLocal
from earlysleep.identity.service import IdentityService, to_user_response

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("/ensure")
async def ensure_user(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid, overrides=body)
            return {"user": to_user_response(user)}

    return await run_handler("users.ensure", _call)
