from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from earlysleep.api.deps import as_body, caller_openid
from earlysleep.core.envelope import run_handler
from earlysleep.db.session import SessionLocal
from earlysleep.friends.service import FriendService
from earlysleep.identity.service import IdentityService

router = APIRouter(prefix="/api/friends", tags=["friends"])


@router.post("/request")
async def send_friend_request(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            request_id = await FriendService.send_request(
                session,
                from_uid=user.uid,
                to_uid=body.get("targetUid", body.get("toUid")),
            )
            return {"requestId": request_id}

    return await run_handler("friends.request", _call)


@router.post("/resolve")
async def resolve_friend_request(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            result = await FriendService.resolve_request(
                session,
                request_id=body.get("requestId"),
                decider_uid=user.uid,
                decision=body.get("decision"),
            )
            return {"status": result.status, "edgeId": result.edge_id, "edgeCreated": result.edge_created}

    return await run_handler("friends.resolve", _call)


@router.post("/remove")
async def remove_friend(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            removed = await FriendService.remove_friend(session, uid=user.uid, target_uid=body.get("targetUid"))
            return {"removed": removed}

    return await run_handler("friends.remove", _call)


@router.post("/finish")
async def finish_friend_request(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            added = await FriendService.finish_request(
                session,
                request_id=body.get("requestId"),
                sender_uid=user.uid,
            )
            return {"added": added}

    return await run_handler("friends.finish", _call)


@router.post("/page")
async def friends_page(
    payload: dict[str, Any] | None = Body(default=None),
    openid: str | None = Depends(caller_openid),
) -> dict[str, Any]:
    body = as_body(payload)

    async def _call() -> dict[str, Any]:
        async with SessionLocal.begin() as session:
            user = await IdentityService.ensure_user(session, openid=openid)
            page = await FriendService.list_page(
                session,
                uid=user.uid,
                cursor=body.get("cursor"),
                limit=body.get("limit"),
            )
            return {
                "list": page.friends,
                "nextCursor": page.next_cursor,
                "requests": {"incoming": page.incoming, "outgoing": page.outgoing},
            }

    return await run_handler("friends.page", _call)
