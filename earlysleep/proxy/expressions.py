"""Wire format of proxy queries.

Query values arrive as JSON. Tagged objects carry a ``__cloudType`` marker:

- ``{"__cloudType": "command", "kind": "comparison", "operator": "gte", "value": V}``
- ``{"__cloudType": "command", "kind": "in", "values": [V, ...]}``
- ``{"__cloudType": "command", "kind": "logical", "operator": "and", "operands": [C, ...]}``
- ``{"__cloudType": "date", "value": ISO string or epoch milliseconds}``
- ``{"__cloudType": "serverDate"}``

Any other JSON scalar is a literal, and a bare field value means equality. Unknown markers, kinds and
operators fail parsing instead of reaching the database.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Union

from sqlalchemy import and_
from sqlalchemy.sql.elements import ColumnElement

from earlysleep.core.errors import InvalidArgError

TYPE_MARKER = "__cloudType"
COMPARISON_OPERATORS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte"})


@dataclass(frozen=True, slots=True)
class Literal:
    value: str | int | float | bool | None


@dataclass(frozen=True, slots=True)
class DateValue:
    value: datetime


@dataclass(frozen=True, slots=True)
class ServerTimestamp:
    pass


Value = Union[Literal, DateValue, ServerTimestamp]


@dataclass(frozen=True, slots=True)
class Comparison:
    operator: str
    operand: Value


@dataclass(frozen=True, slots=True)
class In:
    values: tuple[Value, ...]


@dataclass(frozen=True, slots=True)
class And:
    operands: tuple[Condition, ...]


Condition = Union[Comparison, In, And]


def _parse_date(raw: object) -> datetime:
    if isinstance(raw, bool):
        raise InvalidArgError("invalid date value")
    if isinstance(raw, (int, float)):
        try:
            return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidArgError("invalid date value") from exc
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidArgError("invalid date value") from exc
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=timezone.utc)
    raise InvalidArgError("invalid date value")


def parse_value(raw: object) -> Value:
    if raw is None or isinstance(raw, (str, int, float, bool)):
        return Literal(raw)
    if isinstance(raw, Mapping):
        marker = raw.get(TYPE_MARKER)
        if marker == "date":
            return DateValue(_parse_date(raw.get("value")))
        if marker == "serverDate":
            return ServerTimestamp()
        if marker is None:
            raise InvalidArgError("nested objects are not queryable")
        raise InvalidArgError(f"unsupported value type: {marker}")
    raise InvalidArgError("unsupported value")


def parse_condition(raw: object) -> Condition:
    if not isinstance(raw, Mapping) or raw.get(TYPE_MARKER) != "command":
        return Comparison("eq", parse_value(raw))

    kind = raw.get("kind")
    if kind == "comparison":
        operator = raw.get("operator")
        if operator not in COMPARISON_OPERATORS:
            raise InvalidArgError(f"unsupported comparison operator: {operator}")
        return Comparison(str(operator), parse_value(raw.get("value")))
    if kind == "in":
        values = raw.get("values")
        if not isinstance(values, list):
            raise InvalidArgError("in requires a list of values")
        return In(tuple(parse_value(item) for item in values))
    if kind == "logical":
        operator = raw.get("operator")
        if operator != "and":
            raise InvalidArgError(f"unsupported logical operator: {operator}")
        operands = raw.get("operands")
        if not isinstance(operands, list) or not operands:
            raise InvalidArgError("and requires operands")
        return And(tuple(parse_condition(item) for item in operands))
    raise InvalidArgError(f"unsupported command kind: {kind}")


def parse_query(raw: object) -> dict[str, Condition]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise InvalidArgError("query must be an object")
    return {str(field): parse_condition(condition) for field, condition in raw.items()}


def parse_data(raw: object) -> dict[str, Value]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise InvalidArgError("data must be an object")
    return {str(field): parse_value(value) for field, value in raw.items()}


def iter_comparisons(condition: Condition) -> Iterator[Comparison]:
    if isinstance(condition, And):
        for operand in condition.operands:
            yield from iter_comparisons(operand)
    elif isinstance(condition, Comparison):
        yield condition


def compile_condition(
    column: Any,
    condition: Condition,
    resolve: Callable[[Value], object],
) -> ColumnElement[bool]:
    if isinstance(condition, And):
        return and_(*(compile_condition(column, operand, resolve) for operand in condition.operands))
    if isinstance(condition, In):
        return column.in_([resolve(value) for value in condition.values])

    operand = resolve(condition.operand)
    if condition.operator == "eq":
        return column.is_(None) if operand is None else column == operand
    if condition.operator == "neq":
        return column.is_not(None) if operand is None else column != operand
    if operand is None:
        raise InvalidArgError("null is only comparable with eq or neq")
    if condition.operator == "gt":
        return column > operand
    if condition.operator == "gte":
        return column >= operand
    if condition.operator == "lt":
        return column < operand
    return column <= operand


def normalize_output(value: Any) -> Any:
    if isinstance(value, datetime):
        return {TYPE_MARKER: "date", "value": value.isoformat()}
    if isinstance(value, Mapping):
        return {key: normalize_output(entry) for key, entry in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_output(item) for item in value]
    return value
