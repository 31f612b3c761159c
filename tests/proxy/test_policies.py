from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from earlysleep.core.errors import ForbiddenError, InvalidArgError, UnauthorizedError
from earlysleep.proxy.expressions import DateValue, Literal, ServerTimestamp
from earlysleep.proxy.policies import (
    GOODNIGHT_MESSAGES_POLICY,
    SLOT_DAILY_POLICY,
    CallerContext,
    FieldSpec,
    ProxyAction,
    ProxyRequest,
    RecordKind,
    policy_for,
    resolve_field_value,
)
from earlysleep.proxy.service import parse_request

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _caller(openid: str = "openid-1", uid: str | None = "AAAA2222") -> CallerContext:
    loads: list[int] = []

    async def _load() -> str | None:
        loads.append(1)
        return uid

    caller = CallerContext(openid, _load)
    caller.loads = loads
    return caller


@pytest.mark.asyncio
async def test_caller_uid_is_loaded_once() -> None:
    caller = _caller()

    assert await caller.uid() == "AAAA2222"
    assert await caller.uid() == "AAAA2222"
    assert len(caller.loads) == 1


@pytest.mark.asyncio
async def test_caller_without_user_record_is_unauthorized() -> None:
    with pytest.raises(UnauthorizedError):
        await _caller(uid=None).uid()


@pytest.mark.asyncio
async def test_users_are_reachable_only_by_their_own_openid() -> None:
    policy = policy_for(RecordKind.USERS)

    own_doc = parse_request({"collection": "users", "action": "doc.get", "id": "openid-1"})
    await policy.authorize(own_doc, _caller())
    await policy.authorize(
        parse_request({"collection": "users", "action": "collection.get", "query": {"_id": "openid-1"}}),
        _caller(),
    )
    with pytest.raises(ForbiddenError):
        await policy.authorize(
            parse_request({"collection": "users", "action": "doc.get", "id": "openid-2"}),
            _caller(),
        )
    with pytest.raises(ForbiddenError):
        await policy.authorize(
            parse_request({"collection": "users", "action": "collection.get", "query": {"uid": "AAAA2222"}}),
            _caller(),
        )


@pytest.mark.asyncio
async def test_checkins_are_scoped_to_the_caller_uid() -> None:
    policy = policy_for(RecordKind.CHECKINS)

    await policy.authorize(
        parse_request({"collection": "checkins", "action": "doc.get", "id": "AAAA2222#20240101"}),
        _caller(),
    )
    await policy.authorize(
        parse_request(
            {
                "collection": "checkins",
                "action": "collection.count",
                "query": {
                    "uid": {
                        "__cloudType": "command",
                        "kind": "logical",
                        "operator": "and",
                        "operands": ["AAAA2222", {"__cloudType": "command", "kind": "comparison",
                                                  "operator": "neq", "value": None}],
                    }
                },
            }
        ),
        _caller(),
    )
    with pytest.raises(ForbiddenError):
        await policy.authorize(
            parse_request({"collection": "checkins", "action": "doc.get", "id": "AAAA22229#20240101"}),
            _caller(),
        )
    with pytest.raises(ForbiddenError):
        await policy.authorize(
            parse_request({"collection": "checkins", "action": "collection.get", "query": {"date": "20240101"}}),
            _caller(),
        )


def test_write_actions_outside_allow_list_are_forbidden() -> None:
    with pytest.raises(ForbiddenError):
        parse_request({"collection": "checkins", "action": "doc.update", "id": "AAAA2222#20240101"})
    with pytest.raises(ForbiddenError):
        parse_request({"collection": "slot_daily", "action": "doc.remove", "id": "22:00#20240101"})
    with pytest.raises(ForbiddenError):
        parse_request({"collection": "users", "action": "doc.set", "id": "openid-1"})


def test_check_fields_rejects_unknown_query_order_and_data_keys() -> None:
    with pytest.raises(ForbiddenError):
        SLOT_DAILY_POLICY.check_fields(
            parse_request({"collection": "slot_daily", "action": "collection.get", "query": {"secret": 1}})
        )
    with pytest.raises(ForbiddenError):
        SLOT_DAILY_POLICY.check_fields(
            parse_request({"collection": "slot_daily", "action": "collection.get", "orderBy": [{"field": "rand"}]})
        )
    with pytest.raises(ForbiddenError):
        GOODNIGHT_MESSAGES_POLICY.check_fields(
            parse_request(
                {
                    "collection": "goodnight_messages",
                    "action": "doc.update",
                    "id": "m1",
                    "data": {"text": "hacked"},
                }
            )
        )


@pytest.mark.asyncio
async def test_goodnight_message_writes_require_the_owner() -> None:
    request = ProxyRequest(
        kind=RecordKind.GOODNIGHT_MESSAGES,
        action=ProxyAction.DOC_UPDATE,
        doc_id="BBBB3333_20240101",
        data={"likes": Literal(3)},
    )
    record = SimpleNamespace(uid="BBBB3333", likes=0, dislikes=1, score=-1)

    with pytest.raises(ForbiddenError):
        await GOODNIGHT_MESSAGES_POLICY.authorize_record(request, record, _caller())

    await GOODNIGHT_MESSAGES_POLICY.authorize_record(request, record, _caller(uid="BBBB3333"))
    GOODNIGHT_MESSAGES_POLICY.apply_update(record, request.data, NOW)
    assert (record.likes, record.dislikes, record.score) == (3, 1, 2)


def test_goodnight_message_counters_must_be_non_negative_integers() -> None:
    record = SimpleNamespace(uid="BBBB3333", likes=0, dislikes=0, score=0)

    with pytest.raises(InvalidArgError):
        GOODNIGHT_MESSAGES_POLICY.apply_update(record, {"likes": Literal(-1)}, NOW)
    with pytest.raises(InvalidArgError):
        GOODNIGHT_MESSAGES_POLICY.apply_update(record, {"dislikes": Literal("2")}, NOW)


def test_user_update_rederives_slot_key() -> None:
    policy = policy_for(RecordKind.USERS)
    record = SimpleNamespace(
        nickname="old",
        tz_offset_minutes=480,
        target_hm="22:00",
        slot_key="22:00",
        updated_at=None,
    )

    policy.apply_update(
        record,
        {"nickname": Literal("  Night Owl "), "tzOffset": Literal(2000), "targetHM": Literal("23:45")},
        NOW,
    )

    assert record.nickname == "Night Owl"
    assert record.tz_offset_minutes == 14 * 60
    assert (record.target_hm, record.slot_key) == ("23:45", "23:30")
    assert record.updated_at == NOW


def test_resolve_field_value_enforces_column_types() -> None:
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)

    assert resolve_field_value(FieldSpec("created_at", "datetime"), DateValue(moment), NOW) == moment
    assert resolve_field_value(FieldSpec("created_at", "datetime"), ServerTimestamp(), NOW) == NOW
    assert resolve_field_value(FieldSpec("hit_rate", "float"), Literal(1), NOW) == 1.0
    assert resolve_field_value(FieldSpec("uid", "str"), Literal(None), NOW) is None
    with pytest.raises(InvalidArgError):
        resolve_field_value(FieldSpec("likes", "int"), Literal("1"), NOW)
    with pytest.raises(InvalidArgError):
        resolve_field_value(FieldSpec("uid", "str"), DateValue(moment), NOW)
    with pytest.raises(InvalidArgError):
        resolve_field_value(FieldSpec("likes", "int"), Literal(True), NOW)
