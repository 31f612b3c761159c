from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from earlysleep.core.dates import normalize_hm, normalize_tz_offset, quantize_slot_key
from earlysleep.core.errors import ForbiddenError, InvalidArgError, UnauthorizedError
from earlysleep.db.models.base import Base
from earlysleep.db.models.checkins import Checkin
from earlysleep.db.models.goodnight_messages import GoodnightMessage
from earlysleep.db.models.slot_daily import SlotDaily
from earlysleep.db.models.users import User
from earlysleep.identity.constants import MAX_NICKNAME_LENGTH
from earlysleep.proxy.expressions import Condition, DateValue, Literal, Value, iter_comparisons


class RecordKind(str, Enum):
    USERS = "users"
    CHECKINS = "checkins"
    GOODNIGHT_MESSAGES = "goodnight_messages"
    SLOT_DAILY = "slot_daily"


class ProxyAction(str, Enum):
    DOC_GET = "doc.get"
    DOC_SET = "doc.set"
    DOC_UPDATE = "doc.update"
    DOC_REMOVE = "doc.remove"
    COLLECTION_GET = "collection.get"
    COLLECTION_COUNT = "collection.count"


DOC_ACTIONS = frozenset({ProxyAction.DOC_GET, ProxyAction.DOC_SET, ProxyAction.DOC_UPDATE, ProxyAction.DOC_REMOVE})
WRITE_ACTIONS = frozenset({ProxyAction.DOC_SET, ProxyAction.DOC_UPDATE, ProxyAction.DOC_REMOVE})


@dataclass(frozen=True, slots=True)
class FieldSpec:
    attr: str
    value_type: str  # str | int | float | datetime


@dataclass(frozen=True, slots=True)
class ProxyRequest:
    kind: RecordKind
    action: ProxyAction
    doc_id: str | None = None
    data: dict[str, Value] = field(default_factory=dict)
    query: dict[str, Condition] = field(default_factory=dict)
    order_by: tuple[tuple[str, str], ...] = ()
    limit: int = 20


class CallerContext:
    """Caller identity for one proxy call; the public uid is only loaded when a policy asks for it."""

    def __init__(self, openid: str, load_uid: Callable[[], Awaitable[str | None]]) -> None:
        self.openid = openid
        self._load_uid = load_uid
        self._uid: str | None = None

    async def uid(self) -> str:
        if self._uid is None:
            loaded = await self._load_uid()
            if not loaded:
                raise UnauthorizedError("caller has no user record")
            self._uid = loaded
        return self._uid


def _equality_values(condition: Condition | None) -> list[object]:
    if condition is None:
        return []
    return [
        item.operand.value
        for item in iter_comparisons(condition)
        if item.operator == "eq" and isinstance(item.operand, Literal)
    ]


def literal_update_value(value: Value, field_name: str) -> object:
    if not isinstance(value, Literal):
        raise InvalidArgError(f"field {field_name} takes a plain value")
    return value.value


class RecordPolicy:
    kind: RecordKind
    model: type[Base]
    fields: Mapping[str, FieldSpec]
    actions: frozenset[ProxyAction]
    updatable: frozenset[str] = frozenset()

    def check_fields(self, request: ProxyRequest) -> None:
        """Rejects any query, orderBy or data key outside this kind's allow-lists."""
        for name in request.query:
            if name not in self.fields:
                raise ForbiddenError(f"field {name} is not queryable")
        for name, _ in request.order_by:
            if name not in self.fields:
                raise ForbiddenError(f"field {name} is not sortable")
        for name in request.data:
            if name not in self.updatable:
                raise ForbiddenError(f"field {name} is not writable")

    async def authorize(self, request: ProxyRequest, caller: CallerContext) -> None:
        if request.action not in self.actions:
            raise ForbiddenError("action not allowed")

    async def authorize_record(self, request: ProxyRequest, record: Any, caller: CallerContext) -> None:
        return None

    def apply_update(self, record: Any, data: Mapping[str, Value], now_utc: datetime) -> None:
        raise ForbiddenError("record kind is read-only")

    def to_wire(self, record: Any) -> dict[str, Any]:
        return {name: getattr(record, spec.attr) for name, spec in self.fields.items()}


class SelfPolicy(RecordPolicy):
    """Records keyed by the caller's identity token; only the caller's own record is reachable."""

    kind = RecordKind.USERS
    model = User
    fields = {
        "_id": FieldSpec("id", "str"),
        "uid": FieldSpec("uid", "str"),
        "nickname": FieldSpec("nickname", "str"),
        "tzOffset": FieldSpec("tz_offset_minutes", "int"),
        "targetHM": FieldSpec("target_hm", "str"),
        "slotKey": FieldSpec("slot_key", "str"),
        "todayStatus": FieldSpec("today_status", "str"),
        "streak": FieldSpec("streak", "int"),
        "totalDays": FieldSpec("total_days", "int"),
        "lastCheckinDate": FieldSpec("last_checkin_date", "str"),
        "createdAt": FieldSpec("created_at", "datetime"),
        "updatedAt": FieldSpec("updated_at", "datetime"),
    }
    actions = frozenset({ProxyAction.DOC_GET, ProxyAction.DOC_UPDATE, ProxyAction.COLLECTION_GET})
    updatable = frozenset({"nickname", "tzOffset", "targetHM"})

    async def authorize(self, request: ProxyRequest, caller: CallerContext) -> None:
        await super().authorize(request, caller)
        if request.action in DOC_ACTIONS:
            if request.doc_id != caller.openid:
                raise ForbiddenError("only your own record is accessible")
            return
        if caller.openid not in _equality_values(request.query.get("_id")):
            raise ForbiddenError("query must be scoped to your own record")

    def apply_update(self, record: User, data: Mapping[str, Value], now_utc: datetime) -> None:
        if "nickname" in data:
            nickname = literal_update_value(data["nickname"], "nickname")
            if not isinstance(nickname, str) or not nickname.strip():
                raise InvalidArgError("nickname must not be empty")
            record.nickname = nickname.strip()[:MAX_NICKNAME_LENGTH]
        if "tzOffset" in data:
            tz_offset = literal_update_value(data["tzOffset"], "tzOffset")
            if isinstance(tz_offset, bool) or not isinstance(tz_offset, (int, float)):
                raise InvalidArgError("tzOffset must be a number")
            record.tz_offset_minutes = normalize_tz_offset(tz_offset)
        if "targetHM" in data:
            target_hm = literal_update_value(data["targetHM"], "targetHM")
            record.target_hm = normalize_hm(target_hm, record.target_hm)
            record.slot_key = quantize_slot_key(record.target_hm)
        record.updated_at = now_utc


class OwnedByUidPolicy(RecordPolicy):
    """Records owned through the caller's public uid; writes go through the domain services."""

    kind = RecordKind.CHECKINS
    model = Checkin
    fields = {
        "_id": FieldSpec("id", "str"),
        "uid": FieldSpec("uid", "str"),
        "date": FieldSpec("date", "str"),
        "status": FieldSpec("status", "str"),
        "tzOffset": FieldSpec("tz_offset_minutes", "int"),
        "gnMsgId": FieldSpec("goodnight_message_id", "str"),
        "timestamp": FieldSpec("created_at", "datetime"),
    }
    actions = frozenset({ProxyAction.DOC_GET, ProxyAction.COLLECTION_GET, ProxyAction.COLLECTION_COUNT})

    async def authorize(self, request: ProxyRequest, caller: CallerContext) -> None:
        await super().authorize(request, caller)
        uid = await caller.uid()
        if request.action in DOC_ACTIONS:
            if not request.doc_id or not request.doc_id.startswith(f"{uid}#"):
                raise ForbiddenError("only your own records are accessible")
            return
        if uid not in _equality_values(request.query.get("uid")):
            raise ForbiddenError("query must be scoped to your own uid")


class PublicReadPolicy(RecordPolicy):
    """Readable by anyone; writes, where declared, only by the record's owner."""

    owner_attr: str | None = None

    def __init__(
        self,
        *,
        kind: RecordKind,
        model: type[Base],
        fields: Mapping[str, FieldSpec],
        actions: frozenset[ProxyAction],
        updatable: frozenset[str] = frozenset(),
        owner_attr: str | None = None,
    ) -> None:
        self.kind = kind
        self.model = model
        self.fields = fields
        self.actions = actions
        self.updatable = updatable
        self.owner_attr = owner_attr

    async def authorize(self, request: ProxyRequest, caller: CallerContext) -> None:
        await super().authorize(request, caller)
        if request.action in WRITE_ACTIONS and self.owner_attr is None:
            raise ForbiddenError("record kind is read-only")

    async def authorize_record(self, request: ProxyRequest, record: Any, caller: CallerContext) -> None:
        if request.action not in WRITE_ACTIONS:
            return
        if self.owner_attr is None or getattr(record, self.owner_attr) != await caller.uid():
            raise ForbiddenError("only the owner may modify this record")

    def apply_update(self, record: GoodnightMessage, data: Mapping[str, Value], now_utc: datetime) -> None:
        for name in ("likes", "dislikes"):
            if name not in data:
                continue
            value = literal_update_value(data[name], name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidArgError(f"{name} must be a non-negative integer")
            setattr(record, name, value)
        record.score = record.likes - record.dislikes


GOODNIGHT_MESSAGES_POLICY = PublicReadPolicy(
    kind=RecordKind.GOODNIGHT_MESSAGES,
    model=GoodnightMessage,
    fields={
        "_id": FieldSpec("id", "str"),
        "uid": FieldSpec("uid", "str"),
        "date": FieldSpec("date", "str"),
        "text": FieldSpec("text", "str"),
        "slotKey": FieldSpec("slot_key", "str"),
        "likes": FieldSpec("likes", "int"),
        "dislikes": FieldSpec("dislikes", "int"),
        "score": FieldSpec("score", "int"),
        "status": FieldSpec("status", "str"),
        "createdAt": FieldSpec("created_at", "datetime"),
    },
    actions=frozenset(
        {
            ProxyAction.DOC_GET,
            ProxyAction.DOC_UPDATE,
            ProxyAction.DOC_REMOVE,
            ProxyAction.COLLECTION_GET,
            ProxyAction.COLLECTION_COUNT,
        }
    ),
    updatable=frozenset({"likes", "dislikes"}),
    owner_attr="uid",
)

SLOT_DAILY_POLICY = PublicReadPolicy(
    kind=RecordKind.SLOT_DAILY,
    model=SlotDaily,
    fields={
        "_id": FieldSpec("id", "str"),
        "slotKey": FieldSpec("slot_key", "str"),
        "date": FieldSpec("date", "str"),
        "participants": FieldSpec("participants", "int"),
        "hits": FieldSpec("hits", "int"),
        "hitRate": FieldSpec("hit_rate", "float"),
        "updatedAt": FieldSpec("updated_at", "datetime"),
    },
    actions=frozenset({ProxyAction.DOC_GET, ProxyAction.COLLECTION_GET, ProxyAction.COLLECTION_COUNT}),
)

POLICIES: dict[RecordKind, RecordPolicy] = {
    RecordKind.USERS: SelfPolicy(),
    RecordKind.CHECKINS: OwnedByUidPolicy(),
    RecordKind.GOODNIGHT_MESSAGES: GOODNIGHT_MESSAGES_POLICY,
    RecordKind.SLOT_DAILY: SLOT_DAILY_POLICY,
}


def policy_for(kind: RecordKind) -> RecordPolicy:
    return POLICIES[kind]


def resolve_field_value(spec: FieldSpec, value: Value, now_utc: datetime) -> object:
    """Turns a parsed value into a Python value matching the column type."""
    if isinstance(value, DateValue):
        if spec.value_type != "datetime":
            raise InvalidArgError("date values only apply to date fields")
        return value.value
    if not isinstance(value, Literal):
        if spec.value_type != "datetime":
            raise InvalidArgError("server dates only apply to date fields")
        return now_utc

    raw = value.value
    if raw is None:
        return None
    if spec.value_type == "str" and isinstance(raw, str):
        return raw
    if spec.value_type == "int" and isinstance(raw, int) and not isinstance(raw, bool):
        return raw
    if spec.value_type == "float" and isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    raise InvalidArgError("value does not match the field type")
