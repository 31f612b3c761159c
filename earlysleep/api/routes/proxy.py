from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from earlysleep.api.deps import as_body, caller_openid
from earlysleep.core.envelope import run_handler
from earlysleep.db.session import SessionLocal
from earlysleep.identity.service import IdentityService
from earlysleep.proxy.policies import CallerContext
from earlysleep.proxy.service import ProxyService

router = APIRouter(prefix="/api/db", tags=["proxy"])


@router.post("/proxy")
async def database_proxy(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        caller_id = IdentityService.require_caller(openid)
        async with SessionLocal.begin() as session:

            async def _load_uid() -> str | None:
                user = await IdentityService.ensure_user(session, openid=caller_id)
                return user.uid

            caller = CallerContext(caller_id, _load_uid)
            return await ProxyService.execute(session, caller=caller, payload=body)

    return await run_handler("db.proxy", _call)
