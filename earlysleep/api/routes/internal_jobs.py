from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, HTTPException, Request

from earlysleep.core.config import get_settings
from earlysleep.core.envelope import run_handler
from earlysleep.services.internal_auth import (
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
)
from earlysleep.workers.tasks.friendship_sweep import run_friendship_sweep_async
from earlysleep.workers.tasks.goodnight_reactions import run_goodnight_reactions_consume_async
from earlysleep.workers.tasks.slot_rollup import run_slot_rollup_async

router = APIRouter(prefix="/internal/jobs", tags=["internal", "jobs"])
logger = structlog.get_logger(__name__)


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(request, trusted_proxies=settings.internal_api_trusted_proxies)

    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning("internal_jobs_auth_failed", reason="invalid_token", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "FORBIDDEN"})

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("internal_jobs_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "FORBIDDEN"})


def _positive_int(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return value


@router.post("/reactions")
async def consume_reactions_job(
    request: Request,
    payload: dict[str, Any] | None = Body(default=None),
) -> dict[str, Any]:
    _assert_internal_access(request)
    batch_size = _positive_int((payload or {}).get("batchSize"))

    async def _call() -> dict[str, Any]:
        return await run_goodnight_reactions_consume_async(batch_size=batch_size)

    return await run_handler("jobs.reactions", _call)


@router.post("/rollup")
async def slot_rollup_job(
    request: Request,
    payload: dict[str, Any] | None = Body(default=None),
) -> dict[str, Any]:
    _assert_internal_access(request)
    date_key = (payload or {}).get("date")

    async def _call() -> dict[str, Any]:
        return await run_slot_rollup_async(date_key=date_key)

    return await run_handler("jobs.rollup", _call)


@router.post("/friendship-sweep")
async def friendship_sweep_job(
    request: Request,
    payload: dict[str, Any] | None = Body(default=None),
) -> dict[str, Any]:
    _assert_internal_access(request)
    limit = _positive_int((payload or {}).get("limit")) or 100

    async def _call() -> dict[str, Any]:
        return await run_friendship_sweep_async(limit=limit)

    return await run_handler("jobs.friendship_sweep", _call)
