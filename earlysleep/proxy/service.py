from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from earlysleep.core.config import get_settings
from earlysleep.core.errors import ForbiddenError, InvalidArgError, NotFoundError
from earlysleep.proxy.expressions import compile_condition, normalize_output, parse_data, parse_query
from earlysleep.proxy.policies import (
    DOC_ACTIONS,
    CallerContext,
    ProxyAction,
    ProxyRequest,
    RecordKind,
    RecordPolicy,
    policy_for,
    resolve_field_value,
)

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 20


def _parse_kind(raw: object) -> RecordKind:
    try:
        return RecordKind(raw)
    except ValueError as exc:
        raise ForbiddenError("record kind is not accessible") from exc


def _parse_action(raw: object) -> ProxyAction:
    try:
        return ProxyAction(raw)
    except ValueError as exc:
        raise ForbiddenError("action not allowed") from exc


def _parse_order_by(raw: object) -> tuple[tuple[str, str], ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise InvalidArgError("orderBy must be a list")
    rules: list[tuple[str, str]] = []
    for rule in raw:
        if not isinstance(rule, Mapping) or not isinstance(rule.get("field"), str):
            raise InvalidArgError("orderBy rules need a field")
        order = rule.get("order", "asc")
        if order not in ("asc", "desc"):
            raise InvalidArgError("orderBy order must be asc or desc")
        rules.append((rule["field"], order))
    return tuple(rules)


def _clamp_limit(raw: object, max_limit: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(raw):
        return min(DEFAULT_LIMIT, max_limit)
    return max(1, min(int(raw), max_limit))


def parse_request(payload: Mapping[str, Any]) -> ProxyRequest:
    """Validates the kind and action before anything else in the payload is looked at."""
    kind = _parse_kind(payload.get("collection", payload.get("kind")))
    action = _parse_action(payload.get("action"))
    if action not in policy_for(kind).actions:
        raise ForbiddenError("action not allowed")

    doc_id = payload.get("id")
    if action in DOC_ACTIONS and (not isinstance(doc_id, str) or not doc_id):
        raise InvalidArgError("missing document id")

    return ProxyRequest(
        kind=kind,
        action=action,
        doc_id=doc_id if isinstance(doc_id, str) else None,
        data=parse_data(payload.get("data")),
        query=parse_query(payload.get("query")),
        order_by=_parse_order_by(payload.get("orderBy")),
        limit=_clamp_limit(payload.get("limit"), get_settings().proxy_max_limit),
    )


def _where_clauses(policy: RecordPolicy, request: ProxyRequest, now_utc: datetime) -> list[Any]:
    clauses = []
    for name, condition in request.query.items():
        field = policy.fields[name]

        def _resolve(value, field=field):
            return resolve_field_value(field, value, now_utc)

        clauses.append(compile_condition(getattr(policy.model, field.attr), condition, _resolve))
    return clauses


class ProxyService:
    @staticmethod
    async def execute(
        session: AsyncSession,
        *,
        caller: CallerContext,
        payload: Mapping[str, Any],
        now_utc: datetime | None = None,
    ) -> dict[str, Any]:
        request = parse_request(payload)
        policy = policy_for(request.kind)
        policy.check_fields(request)
        await policy.authorize(request, caller)

        now = now_utc or datetime.now(timezone.utc)
        if request.action in DOC_ACTIONS:
            return await ProxyService._execute_doc(session, policy, request, caller, now)

        clauses = _where_clauses(policy, request, now)
        if request.action == ProxyAction.COLLECTION_COUNT:
            count_stmt = select(func.count()).select_from(policy.model).where(*clauses)
            total = (await session.execute(count_stmt)).scalar_one()
            return {"total": int(total)}

        stmt = select(policy.model).where(*clauses)
        for name, order in request.order_by:
            column = getattr(policy.model, policy.fields[name].attr)
            stmt = stmt.order_by(column.desc() if order == "desc" else column.asc())
        stmt = stmt.limit(request.limit)
        rows = (await session.execute(stmt)).scalars().all()
        return {"data": normalize_output([policy.to_wire(row) for row in rows])}

    @staticmethod
    async def _execute_doc(
        session: AsyncSession,
        policy: RecordPolicy,
        request: ProxyRequest,
        caller: CallerContext,
        now_utc: datetime,
    ) -> dict[str, Any]:
        if request.action == ProxyAction.DOC_GET:
            record = await session.get(policy.model, request.doc_id)
        else:
            record = await session.get(policy.model, request.doc_id, with_for_update=True)
        if record is None:
            raise NotFoundError("document not found")
        await policy.authorize_record(request, record, caller)

        if request.action == ProxyAction.DOC_GET:
            return {"data": normalize_output(policy.to_wire(record))}
        if request.action == ProxyAction.DOC_UPDATE:
            if not request.data:
                raise InvalidArgError("nothing to update")
            policy.apply_update(record, request.data, now_utc)
            await session.flush()
            logger.info("proxy_doc_updated", kind=request.kind.value, fields=sorted(request.data))
            return {"updated": 1}

        await session.delete(record)
        await session.flush()
        logger.info("proxy_doc_removed", kind=request.kind.value)
        return {"removed": 1}
