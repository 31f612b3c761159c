from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from fastapi import Header

CALLER_TOKEN_HEADER = "X-Caller-Token"


def caller_openid(
    x_caller_token: str | None = Header(default=None, alias=CALLER_TOKEN_HEADER),
) -> str | None:
    return x_caller_token


def as_body(payload: Mapping[str, Any] | None) -> dict[str, Any]:
    return dict(payload or {})


def optional_str(body: Mapping[str, Any], key: str) -> str | None:
    value = body.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def optional_bool(body: Mapping[str, Any], key: str, default: bool) -> bool:
    value = body.get(key)
    return value if isinstance(value, bool) else default
